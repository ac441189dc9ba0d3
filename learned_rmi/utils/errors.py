# learned_rmi/utils/errors.py
class ConfigurationError(ValueError):
    """
    Raised when an index is built with malformed network parameters
    (non-positive batch size, epoch count, learning rate, ...).
    """
