from __future__ import annotations

import argparse
import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from .build_config import BuildConfig, bind_vars, load_build_config, parse_var_overrides
from .errors import ProvisionError
from .logging_utils import configure_logging
from .pipeline import run_pipeline
from .recipe import build_steps
from .state_store import ensure_defaults, load_state, save_state

logger = logging.getLogger(__name__)


DEFAULT_BUILD_CONFIG = "build_config.yaml"


def steps_for(cfg: BuildConfig, *, overrides: Optional[Dict[str, str]] = None, verify: bool = True):
    bv = bind_vars(cfg.vars, overrides or {})
    steps = build_steps(
        bv,
        manager=cfg.package_manager,
        base_packages=cfg.packages("base"),
        psm2_packages=cfg.packages("psm2"),
        verify=verify,
        verify_require=cfg.verify_require,
        verify_forbid=cfg.verify_forbid,
    )
    return bv, steps


def run(
    *,
    cfg: BuildConfig,
    state_path: Optional[str] = None,
    log_path: Optional[str] = None,
    target_root: Optional[str] = None,
    overrides: Optional[Dict[str, str]] = None,
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
    dry_run: bool = False,
    verify: bool = True,
) -> Dict[str, Any]:
    """Provision the target image, persisting state after the run."""

    state_path = state_path or cfg.state_path
    actual_log_path = configure_logging(log_path=log_path or cfg.log_path)

    bv, steps = steps_for(cfg, overrides=overrides, verify=verify)

    state = ensure_defaults(load_state(state_path))
    run_cfg = state["config"]
    run_cfg["target_root"] = target_root or cfg.target_root
    run_cfg["package_manager"] = cfg.package_manager
    run_cfg["arch"] = cfg.arch
    run_cfg["jobs"] = cfg.jobs
    run_cfg["dry_run"] = dry_run
    state["vars"] = asdict(bv)
    state["execution"]["results"] = []
    state["execution"].setdefault("paths", {})["log_path_actual"] = actual_log_path

    logger.info("=== Provisioning %s (%d steps) ===", run_cfg["target_root"], len(steps))

    try:
        result = run_pipeline(
            state=state,
            steps=steps,
            start_at=start_at,
            stop_after=stop_after,
            force=force,
        )
        state = result.state
        state["execution"]["summary"] = {
            "ran_steps": result.ran_steps,
            "skipped_steps": result.skipped_steps,
        }
        return state
    except Exception as e:
        logger.exception("Provisioning failed")
        state.setdefault("execution", {}).setdefault("errors", []).append(
            {
                "step": (state.get("execution") or {}).get("current_step"),
                "type": type(e).__name__,
                "error": str(e),
            }
        )
        raise
    finally:
        if not dry_run:
            save_state(state_path, state)


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="mpi-provision")
    p.add_argument("--config", default=None, help=f"Build config YAML (default: {DEFAULT_BUILD_CONFIG} if present)")
    p.add_argument("--state", default=None, help="Path to provisioning state (json|yaml)")
    p.add_argument("--log", default=None, help="Path to provisioning log")
    p.add_argument("--target-root", default=None, help="Image root to provision ('/' = this system)")
    p.add_argument("--var", action="append", default=[], metavar="NAME=VALUE", help="Override a build variable")
    p.add_argument("--start-at", default=None, help="Start at step_id (e.g. 40_build_openmpi)")
    p.add_argument("--stop-after", default=None, help="Stop after step_id")
    p.add_argument("--force", action="store_true", help="Re-run steps even if marked completed")
    p.add_argument("--dry-run", action="store_true", help="Log commands without running them")
    p.add_argument("--skip-verify", action="store_true", help="Do not verify the installed MPI runtime")
    p.add_argument("--list-steps", action="store_true", help="Print the step plan and exit")

    args = p.parse_args(argv)

    try:
        if args.config:
            cfg = load_build_config(args.config)
        else:
            cfg = load_build_config(DEFAULT_BUILD_CONFIG, required=False)
        overrides = parse_var_overrides(args.var)

        if args.list_steps:
            _, steps = steps_for(cfg, overrides=overrides, verify=not args.skip_verify)
            for s in steps:
                print(f"{s.step_id}\t{s.kind}")
            return 0

        run(
            cfg=cfg,
            state_path=args.state,
            log_path=args.log,
            target_root=args.target_root,
            overrides=overrides,
            start_at=args.start_at,
            stop_after=args.stop_after,
            force=args.force,
            dry_run=args.dry_run,
            verify=not args.skip_verify,
        )
    except (ProvisionError, FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
