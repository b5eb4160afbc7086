import numpy as np
import pytest

from deepnet.activations import Activation
from deepnet.errors import PipelineMismatchError, ShapeMismatchError
from deepnet.initializers import uniform_limit
from deepnet.layers import DispatchGrid, FullyConnectedLayer, Layer
from deepnet.tensor import Tensor
from verify.diff_runner import check_kernel_parity, check_layer


def test_scaled_identity_is_exact(ctx):
    n = 5
    x = np.arange(15, dtype=np.float32).reshape(3, n) - 7.0
    layer = FullyConnectedLayer(
        n, n, Activation.IDENTITY, batch_size=3, weights=2.0 * np.eye(n), bias=np.zeros(n), context=ctx
    )
    layer.forward(Tensor((3, n), x, context=ctx))
    np.testing.assert_array_equal(layer.output.read(), 2.0 * x.reshape(-1))


def test_bias_is_added_per_column(ctx):
    layer = FullyConnectedLayer(
        4, 3, "identity", batch_size=2, weights=np.zeros(12), bias=[1.0, 2.0, 3.0], context=ctx
    )
    layer.forward(Tensor((2, 4), np.ones(8), context=ctx))
    np.testing.assert_array_equal(layer.output.read().reshape(2, 3), [[1, 2, 3], [1, 2, 3]])


def test_tanh_clamps_large_inputs(ctx):
    layer = FullyConnectedLayer(3, 2, Activation.TANH, batch_size=2, weights=np.ones(6), bias=np.zeros(2), context=ctx)
    x = np.array([1000.0, 1000.0, 1000.0, -1000.0, -1000.0, -1000.0], dtype=np.float32)
    layer.forward(Tensor((2, 3), x, context=ctx))
    out = layer.output.read()
    assert np.all(np.isfinite(out))
    expected = np.tanh(np.float32(15.0))
    np.testing.assert_allclose(out, [expected, expected, -expected, -expected], atol=1e-6)


@pytest.mark.parametrize("activation", [a.value for a in Activation])
def test_forward_matches_reference(ctx, activation):
    rng = np.random.default_rng(0)
    layer = FullyConnectedLayer(13, 10, activation, batch_size=3, seed=1, context=ctx)
    res = check_layer(layer, rng.uniform(-2.0, 2.0, size=(3, 13)))
    assert res.ok, res.summary


@pytest.mark.parametrize("activation", ["tanh", "relu"])
def test_checked_and_unchecked_variants_agree(activation):
    rng = np.random.default_rng(1)
    x = rng.uniform(-1.0, 1.0, size=(5, 11)).astype(np.float32)
    w = rng.uniform(-1.0, 1.0, size=(11, 9)).astype(np.float32)
    b = rng.uniform(-1.0, 1.0, size=9).astype(np.float32)
    res = check_kernel_parity(x, w, b, activation)
    assert res.ok, res.summary


def test_unchecked_variant_writes_whole_tiles(unchecked_ctx):
    layer = FullyConnectedLayer(
        3, 3, "identity", batch_size=2, weights=np.eye(3), bias=np.ones(3), context=unchecked_ctx
    )
    x = np.arange(6, dtype=np.float32)
    layer.forward(Tensor((2, 3), x, context=unchecked_ctx))
    np.testing.assert_array_equal(layer.output.read(), x + 1.0)
    # Pad rows of the input are zero, so they come out as act(bias).
    padded = layer.output.read_padded().reshape(8, 8)
    assert np.all(padded[2:, :3] == 1.0)
    assert np.all(padded[:, 3:] == 0.0)


def test_checked_variant_leaves_padding_untouched(ctx):
    layer = FullyConnectedLayer(3, 3, "identity", batch_size=2, weights=np.eye(3), bias=np.ones(3), context=ctx)
    layer.forward(Tensor((2, 3), np.zeros(6), context=ctx))
    padded = layer.output.read_padded().reshape(8, 8)
    assert np.all(padded[:2, :3] == 1.0)
    assert np.all(padded[2:, :] == 0.0)
    assert np.all(padded[:, 3:] == 0.0)


def test_input_shape_mismatch_raises_before_dispatch(ctx):
    layer = FullyConnectedLayer(4, 2, batch_size=3, context=ctx)
    with pytest.raises(ShapeMismatchError):
        layer.forward(Tensor((2, 4), context=ctx))
    with pytest.raises(ShapeMismatchError):
        layer.forward(Tensor((3, 5), context=ctx))
    np.testing.assert_array_equal(layer.output.read(), np.zeros(6, dtype=np.float32))


def test_parameter_length_mismatch_raises(ctx):
    with pytest.raises(ShapeMismatchError):
        FullyConnectedLayer(4, 2, weights=np.zeros(7), context=ctx)
    with pytest.raises(ShapeMismatchError):
        FullyConnectedLayer(4, 2, bias=np.zeros(3), context=ctx)
    with pytest.raises(ShapeMismatchError):
        FullyConnectedLayer(0, 2, context=ctx)


def test_activation_assignment_rebinds_pipeline(ctx):
    layer = FullyConnectedLayer(2, 2, "tanh", weights=np.eye(2), bias=np.zeros(2), context=ctx)
    assert layer.pipeline_name == "tanh_forward"
    layer.activation = "relu"
    assert layer.activation is Activation.RELU
    assert layer.pipeline_name == "relu_forward"
    layer.forward(Tensor((1, 2), [-3.0, 4.0], context=ctx))
    np.testing.assert_array_equal(layer.output.read(), [0.0, 4.0])
    with pytest.raises(ValueError):
        layer.activation = "softplus"


def test_stale_pipeline_is_rejected(ctx):
    layer = FullyConnectedLayer(2, 2, "tanh", context=ctx)
    layer._pipeline = ctx.pipeline("sigmoid")
    with pytest.raises(PipelineMismatchError):
        layer.forward(Tensor((1, 2), context=ctx))


def test_dispatch_grid():
    grid = DispatchGrid(tiles_x=38, tiles_y=1, group_width=32)
    assert grid.groups_x == 2
    assert grid.groups_y == 1
    assert grid.launch_grid == (38, 1)


def test_layer_dispatch_grid_uses_padded_shapes(ctx):
    layer = FullyConnectedLayer(20, 300, batch_size=9, context=ctx)
    grid = layer.dispatch_grid(Tensor((9, 20), context=ctx))
    assert (grid.tiles_x, grid.tiles_y) == (38, 2)
    assert grid.group_width == ctx.execution_width
    assert grid.groups_x == 2


def test_resize_input_invalidates_weights_only(ctx):
    layer = FullyConnectedLayer(4, 3, batch_size=2, bias=[1.0, 2.0, 3.0], context=ctx)
    assert layer.resize_input(4) == frozenset()
    assert layer.resize_input(6) == frozenset({"weights"})
    assert layer.input_size == 6
    assert layer.weights.logical_shape == (6, 3)
    np.testing.assert_array_equal(layer.bias.read(), [1.0, 2.0, 3.0])
    assert layer.output.logical_shape == (2, 3)


def test_resize_output_invalidates_weights_and_bias(ctx):
    layer = FullyConnectedLayer(4, 3, batch_size=2, context=ctx)
    old_output = layer.output
    assert layer.resize_output(5) == frozenset({"weights", "bias"})
    assert layer.weights.logical_shape == (4, 5)
    assert layer.bias.logical_shape == (1, 5)
    assert layer.output.logical_shape == (2, 5)
    assert old_output.released


def test_resize_batch_keeps_parameters(ctx):
    layer = FullyConnectedLayer(4, 3, batch_size=2, seed=5, context=ctx)
    w = layer.weights.read()
    b = layer.bias.read()
    assert layer.resize_batch(7) == frozenset()
    assert layer.output.logical_shape == (7, 3)
    np.testing.assert_array_equal(layer.weights.read(), w)
    np.testing.assert_array_equal(layer.bias.read(), b)


def test_randomized_parameters_are_seeded_and_bounded(ctx):
    a = FullyConnectedLayer(30, 20, "tanh", seed=3, context=ctx)
    b = FullyConnectedLayer(30, 20, "tanh", seed=3, context=ctx)
    np.testing.assert_array_equal(a.weights.read(), b.weights.read())
    limit = uniform_limit(30, 20, Activation.TANH)
    assert np.all(np.abs(a.weights.read()) <= limit + 1e-6)
    assert np.all(np.abs(a.bias.read()) <= limit + 1e-6)
    # Padding stays zero after randomisation.
    padded = a.weights.read_padded().reshape(32, 24)
    assert np.all(padded[30:, :] == 0.0)
    assert np.all(padded[:, 20:] == 0.0)


def test_training_extension_points(ctx):
    layer = FullyConnectedLayer(2, 2, context=ctx)
    assert isinstance(layer, Layer)
    with pytest.raises(NotImplementedError):
        layer.backpropagate(layer.output, layer.output)
    with pytest.raises(NotImplementedError):
        layer.backpropagate_target(layer.output, layer.output)


def test_release(ctx):
    layer = FullyConnectedLayer(2, 2, context=ctx)
    layer.release()
    assert layer.weights.released and layer.bias.released and layer.output.released
