import numpy as np
import pytest
import torch

from learned_rmi.models.loss import HuberLoss
from learned_rmi.models.regressor import Regressor


def _net(batch_size=4, hidden=8, seed=0):
    net = Regressor(batch_size, 1, 1, True, "glorot_normal", generator=torch.Generator().manual_seed(seed))
    net.add(hidden, "relu")
    return net


def test_forward_shape_and_fixed_batch():
    net = _net()
    out = net.forward(np.array([1.0, 2.0, 3.0, 4.0]))
    assert out.shape == (4, 1)
    with pytest.raises(ValueError):
        net.forward(np.array([1.0, 2.0]))


def test_predict_accepts_any_number_of_rows():
    net = _net()
    assert net.predict(np.arange(10)).shape == (10, 1)
    assert net.predict([[0.5]]).shape == (1, 1)


def test_backward_returns_input_gradient_and_step_updates():
    net = _net()
    net.register_optimizer(0.01)
    before = net.parameters_vector()
    np.testing.assert_array_equal(before, net.initial_parameters)

    net.forward(np.array([0.1, 0.2, 0.3, 0.4]))
    input_grad = net.backward(np.ones((4, 1), dtype=np.float32))
    net.step()

    assert input_grad.shape == (4, 1)
    assert not np.array_equal(net.parameters_vector(), before)


def test_protocol_errors():
    net = _net()
    with pytest.raises(RuntimeError):
        net.backward(np.ones((4, 1)))
    with pytest.raises(RuntimeError):
        net.step()
    net.predict([[1.0]])
    with pytest.raises(RuntimeError):
        net.add(4, "relu")
    with pytest.raises(ValueError):
        Regressor(4).add(4, "swish")
    with pytest.raises(ValueError):
        Regressor(4, init_scheme="he")


def test_linear_expert_has_two_parameters():
    net = Regressor(2, 1, 1, True, "glorot_normal")
    assert net.num_parameters() == 2
    # bias starts at zero
    assert net.initial_parameters[-1] == 0.0


def test_huber_loss_and_gradient():
    loss_fn = HuberLoss(delta=1.0)
    pred = np.array([[0.0], [10.0]], dtype=np.float32)
    labels = np.array([[0.5], [0.0]], dtype=np.float32)

    # 0.5 * 0.5**2 and 10 - 0.5, averaged
    assert loss_fn.loss(pred, labels) == pytest.approx((0.125 + 9.5) / 2)
    grad = loss_fn.backward(pred, labels)
    np.testing.assert_allclose(grad, [[-0.25], [0.5]], rtol=1e-6)


def test_build_is_explicit_and_idempotent():
    net = _net()
    assert net.initial_parameters is None

    assert net.build() is net
    snapshot = net.initial_parameters.copy()
    assert snapshot.size == net.num_parameters()

    net.build()
    np.testing.assert_array_equal(net.initial_parameters, snapshot)
    with pytest.raises(RuntimeError):
        net.add(4, "relu")
