"""
Diff the device forward pass against the numpy reference.

`compare_outputs` is the shared comparison; `check_layer` and `check_graph`
run a layer or a whole graph on its context and diff the result against the
host reference. `check_kernel_parity` runs the same layer parameters through
the bounds-checked and unchecked kernel variants.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from deepnet.activations import Activation
from deepnet.layers.fully_connected import FullyConnectedLayer
from deepnet.runtime import ComputeContext
from deepnet.tensor import Tensor
from deepnet.utils.logging import get_logger
from verify.reference import layer_params, reference_affine, reference_forward
from verify.tolerances import Tolerances, infer_tolerances


logger = get_logger(__name__)


@dataclass
class DiffResult:
    ok: bool
    max_abs_err: float
    max_rel_err: float
    first_bad_index: Optional[int]
    summary: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "max_abs_err": self.max_abs_err,
            "max_rel_err": self.max_rel_err,
            "first_bad_index": self.first_bad_index,
            "summary": self.summary,
        }


def compare_outputs(got: Any, ref: Any, tol: Tolerances) -> DiffResult:
    got = np.asarray(got).reshape(-1)
    ref = np.asarray(ref).reshape(-1)
    if got.shape != ref.shape:
        return DiffResult(False, float("inf"), float("inf"), None, f"size mismatch: got {got.size}, ref {ref.size}")
    if got.size == 0:
        return DiffResult(True, 0.0, 0.0, None, "ok (empty)")

    got_finite = np.isfinite(got)
    ref_finite = np.isfinite(ref)
    if np.any(got_finite != ref_finite):
        idx = int(np.argmax(got_finite != ref_finite))
        return DiffResult(False, float("inf"), float("inf"), idx, f"non-finite mismatch at {idx}: got={got[idx]} ref={ref[idx]}")
    nonfinite = ~ref_finite
    # NaN matches NaN; infinities must match in sign.
    same = (got == ref) | (np.isnan(got) & np.isnan(ref))
    bad = nonfinite & ~same
    if np.any(bad):
        idx = int(np.argmax(bad))
        return DiffResult(False, float("inf"), float("inf"), idx, f"non-finite value mismatch at {idx}: got={got[idx]} ref={ref[idx]}")
    if not np.any(ref_finite):
        return DiffResult(True, 0.0, 0.0, None, "ok (all non-finite)")

    # Errors are zero on non-finite cells so indices stay aligned with the inputs.
    g64 = np.where(ref_finite, got.astype(np.float64), 0.0)
    r64 = np.where(ref_finite, ref.astype(np.float64), 0.0)
    abs_err = np.abs(g64 - r64)
    rel_err = abs_err / np.maximum(np.abs(r64), 1e-12)
    max_abs = float(abs_err.max())
    max_rel = float(rel_err.max())
    threshold = tol.atol + tol.rtol * np.abs(r64)
    if np.all(abs_err <= threshold):
        return DiffResult(True, max_abs, max_rel, None, f"ok (max_abs={max_abs:.3g}, max_rel={max_rel:.3g})")
    margin = abs_err - threshold
    idx = int(np.argmax(margin))
    return DiffResult(
        False,
        max_abs,
        max_rel,
        idx,
        f"mismatch at {idx}: got={got[idx]} ref={ref[idx]} (atol={tol.atol}, rtol={tol.rtol})",
    )


def check_layer(layer: FullyConnectedLayer, inputs: Any, *, tol: Optional[Tolerances] = None) -> DiffResult:
    """Run `layer.forward` on `inputs` and diff the output against the reference."""
    x = np.asarray(inputs, dtype=np.float32).reshape(layer.batch_size, layer.input_size)
    t = Tensor((layer.batch_size, layer.input_size), x, context=layer.context)
    try:
        layer.forward(t)
        got = layer.output.read()
    finally:
        t.release()
    w, b = layer_params(layer)
    ref = reference_affine(x, w, b, layer.activation)
    tol = tol or infer_tolerances(layer.activation, layer.input_size)
    res = compare_outputs(got, ref, tol)
    logger.debug("check_layer %s: %s", layer.id, res.summary)
    return res


def check_graph(net: Any, inputs: Any, *, tol: Optional[Tolerances] = None) -> DiffResult:
    """Run `net.forward` and diff against the host reference of every layer."""
    got = net.forward(inputs)
    ref = reference_forward(net.layers, inputs, batch_size=net.batch_size)
    if tol is None:
        tols = [infer_tolerances(layer.activation, layer.input_size) for layer in net.layers]
        # Errors compound across layers.
        tol = Tolerances(
            atol=min(sum(t.atol for t in tols), 1e-3),
            rtol=min(sum(t.rtol for t in tols), 1e-3),
        )
    res = compare_outputs(got, ref, tol)
    logger.debug("check_graph %r: %s", net, res.summary)
    return res


def check_kernel_parity(
    inputs: Any,
    weights: Any,
    bias: Any,
    activation: Activation | str,
    *,
    device: str = "auto",
    tol: Optional[Tolerances] = None,
) -> DiffResult:
    """
    Run one set of layer parameters through both kernel variants and compare.

    `inputs` is (batch, n), `weights` is (n, k) and `bias` has k values. The
    unchecked variant reads the padded inner dimension, so any difference
    means a padding cell was not zero.
    """
    x = np.asarray(inputs, dtype=np.float32)
    w = np.asarray(weights, dtype=np.float32)
    if x.ndim != 2 or w.ndim != 2:
        raise ValueError(f"expected rank-2 inputs and weights, got {x.shape} and {w.shape}")
    batch, n = x.shape
    k = w.shape[1]
    outputs = []
    for check_bounds in (True, False):
        ctx = ComputeContext(device, check_bounds=check_bounds)
        layer = FullyConnectedLayer(n, k, activation, batch_size=batch, weights=w, bias=bias, context=ctx)
        try:
            res = check_layer(layer, x, tol=tol)
            if not res.ok:
                return DiffResult(
                    False,
                    res.max_abs_err,
                    res.max_rel_err,
                    res.first_bad_index,
                    f"{'checked' if check_bounds else 'unchecked'} variant vs reference: {res.summary}",
                )
            outputs.append(layer.output.read())
        finally:
            layer.release()
    # Both variants run the same float32 sums in the same order.
    return compare_outputs(outputs[1], outputs[0], tol or Tolerances(0.0, 0.0))


__all__ = ["DiffResult", "compare_outputs", "check_layer", "check_graph", "check_kernel_parity"]
