"""
Inference timing harness.

Builds a two-layer network with constant weights, runs `forward` a few times
and reports the mean wall time per pass. The printed checksum sums the first
output element of every run so each pass has an observable result.

Example:
  python scripts/benchmark_forward.py --inputs 4096 --hidden 1024 --outputs 100 --batch 8
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

import numpy as np


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from deepnet import Activation, ComputeContext, DeepNet  # noqa: E402
from deepnet.config import load_config  # noqa: E402
from deepnet.utils.logging import configure_logging, get_logger  # noqa: E402


logger = get_logger("benchmark_forward")


def build_net(args: argparse.Namespace, ctx: ComputeContext) -> DeepNet:
    net = DeepNet(args.inputs, batch_size=args.batch, context=ctx)
    act = Activation.parse(args.activation)
    net.add_fully_connected_layer(
        args.hidden,
        act,
        weights=np.ones((args.inputs * args.hidden,), dtype=np.float32),
        bias=np.ones((args.hidden,), dtype=np.float32),
    )
    net.add_fully_connected_layer(
        args.outputs,
        act,
        weights=np.ones((args.hidden * args.outputs,), dtype=np.float32),
        bias=np.ones((args.outputs,), dtype=np.float32),
    )
    return net


def main() -> None:
    cfg = load_config()
    ap = argparse.ArgumentParser()
    ap.add_argument("--inputs", type=int, default=65_536)
    ap.add_argument("--hidden", type=int, default=4096)
    ap.add_argument("--outputs", type=int, default=1000)
    ap.add_argument("--batch", type=int, default=8)
    ap.add_argument("--runs", type=int, default=5)
    ap.add_argument("--warmup", type=int, default=1, help="untimed passes (kernel compilation)")
    ap.add_argument("--activation", default="tanh", choices=[a.value for a in Activation])
    ap.add_argument("--device", default=cfg.device)
    ap.add_argument("--unchecked", action="store_true", help="use the kernel variant without bounds masks")
    ap.add_argument("--log-level", default=cfg.log_level)
    args = ap.parse_args()

    configure_logging(args.log_level)
    ctx = ComputeContext(args.device, check_bounds=not args.unchecked, config=cfg)

    print("Preparing data...", flush=True)
    inputs = np.arange(args.inputs * args.batch, dtype=np.float32)

    print("Creating neural network...", flush=True)
    net = build_net(args, ctx)
    logger.info("%r on %s", net, ctx.device)

    try:
        for _ in range(max(0, args.warmup)):
            net.forward(inputs)

        print("Running inference speed test...", flush=True)
        checksum = 0.0
        total = 0.0
        for _ in range(max(1, args.runs)):
            start = time.perf_counter()
            out = net.forward(inputs)
            checksum += float(out[0])
            total += time.perf_counter() - start
        avg = total / max(1, args.runs)
    finally:
        net.release()

    print(checksum)
    print(f"Average time per forward pass: {avg * 1e3:.3f} ms ({args.runs} runs, batch {args.batch})")


if __name__ == "__main__":
    main()
