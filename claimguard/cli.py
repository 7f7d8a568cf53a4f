"""
ClaimGuard CLI
Command-line interface for the claim verification firewall
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from claimguard.config import get_settings, resolve_path
from claimguard.models import Claim, ClaimType, FirewallAction, FirewallMode
from claimguard.services.firewall import FirewallConfig, FirewallOrchestrator, format_plan
from claimguard.services.verification import (
    CalibrationConfig,
    ConfidenceCalibrator,
    EvidenceResolver,
    VerificationContext,
    default_verifiers,
    format_for_display,
)

logger = logging.getLogger(__name__)


def _settings(args):
    settings = get_settings()
    if args.project_root:
        settings = settings.model_copy(update={"PROJECT_ROOT": str(Path(args.project_root).resolve())})
    return settings


def _configure_logging(settings, level=None):
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=settings.LOG_FORMAT,
        stream=sys.stderr,
    )


def _print_json(payload):
    print(json.dumps(payload, indent=2, default=str))


async def _check(args, settings):
    overrides = {"mode": args.mode} if args.mode else {}
    firewall = FirewallOrchestrator(FirewallConfig.from_settings(settings, **overrides), settings=settings)
    try:
        result = await firewall.evaluate({
            "agent_id": args.agent_id,
            "action": args.action,
            "target": args.target or args.file,
            "content": Path(args.file).read_text(encoding="utf-8"),
        })
    finally:
        await firewall.dispose()

    if args.format == "json":
        _print_json(result.model_dump(mode="json"))
    else:
        print(f"{'ALLOWED' if result.allowed else 'BLOCKED'}: {result.decision.reason}")
        for verification in result.evidence:
            print(format_for_display(verification.chain))
        if result.unblock_plan is not None:
            print(format_plan(result.unblock_plan))
    return 0 if result.allowed else 1


async def _quick_check(args, settings):
    firewall = FirewallOrchestrator(
        FirewallConfig.from_settings(settings, enable_audit_log=False), settings=settings
    )
    try:
        result = await firewall.quick_check(Path(args.file).read_text(encoding="utf-8"))
    finally:
        await firewall.dispose()
    _print_json(result.model_dump(mode="json"))
    return 0 if result.safe else 1


def _calibrator(settings):
    return ConfidenceCalibrator(
        CalibrationConfig(
            min_samples_per_bucket=settings.CALIBRATION_MIN_SAMPLES_PER_BUCKET,
            recalibrate_every=settings.CALIBRATION_RECALIBRATE_EVERY,
            data_path=resolve_path(settings, settings.CALIBRATION_PATH),
        )
    )


def _cli_claim(args):
    return Claim(id="cli-claim", type=ClaimType(args.type), value=args.value)


async def _verify(args, settings):
    context = VerificationContext.for_project(settings.PROJECT_ROOT, settings.TRUTHPACK_PATH, args.file)
    resolver = EvidenceResolver(
        default_verifiers(settings),
        context,
        calibrator=_calibrator(settings),
        source_timeout=settings.SOURCE_TIMEOUT_MS / 1000,
        parallel_limit=settings.PARALLEL_LIMIT,
    )
    verification = await resolver.resolve(_cli_claim(args))

    if args.format == "json":
        _print_json(verification.model_dump(mode="json", by_alias=True))
    else:
        print(format_for_display(verification.chain))
        print(f"Calibrated confidence: {verification.calibrated_confidence * 100:.0f}%")
    return 0 if verification.found else 1


async def _calibration(args, settings):
    if args.calibration_command == "feedback":
        return await _calibration_feedback(args, settings)

    calibrator = _calibrator(settings)
    if args.calibration_command == "report":
        print(calibrator.generate_report())
    else:
        _print_json(calibrator.export_data())
    return 0


async def _calibration_feedback(args, settings):
    firewall = FirewallOrchestrator(
        FirewallConfig.from_settings(settings, enable_audit_log=False), settings=settings
    )
    try:
        context = VerificationContext.for_project(settings.PROJECT_ROOT, settings.TRUTHPACK_PATH, args.file)
        verification = await firewall.resolver.resolve(_cli_claim(args), context)
        recorded = await firewall.record_feedback(verification, args.outcome == "correct")
    finally:
        await firewall.dispose()

    if not recorded:
        print(f"No feedback recorded for {args.type} {args.value}: no usable evidence or calibration disabled")
        return 1
    print(
        f"Recorded {args.outcome} outcome for {args.type} {args.value} "
        f"(reported confidence {verification.chain.confidence * 100:.0f}%)"
    )
    return 0


async def _audit(args, settings):
    firewall = FirewallOrchestrator(FirewallConfig.from_settings(settings), settings=settings)
    try:
        if args.audit_command == "recent":
            entries = await firewall.audit_history(args.limit)
            _print_json([entry.model_dump(mode="json", by_alias=True) for entry in entries])
        else:
            since = datetime.fromisoformat(args.since) if args.since else None
            stats = await firewall.audit_stats(since)
            _print_json(stats.model_dump(mode="json", by_alias=True))
    finally:
        await firewall.dispose()
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description="ClaimGuard - verify claims in AI-generated code")
    parser.add_argument("--project-root", help="Project to verify against (default: CLAIMGUARD_PROJECT_ROOT)")
    parser.add_argument("--log-level", choices=["debug", "info", "warning", "error"], help="Log level")
    commands = parser.add_subparsers(dest="command", required=True)

    check = commands.add_parser("check", help="Run the full firewall over a file")
    check.add_argument("file")
    check.add_argument("--action", default=FirewallAction.WRITE.value, choices=[a.value for a in FirewallAction])
    check.add_argument("--target", help="Target path recorded for the action (default: FILE)")
    check.add_argument("--mode", choices=[m.value for m in FirewallMode])
    check.add_argument("--agent-id")
    check.add_argument("--format", default="text", choices=["text", "json"])
    check.set_defaults(handler=_check)

    quick = commands.add_parser("quick-check", help="Heuristic scan without evidence resolution")
    quick.add_argument("file")
    quick.set_defaults(handler=_quick_check)

    verify = commands.add_parser("verify", help="Verify a single claim")
    verify.add_argument("--type", required=True, choices=[t.value for t in ClaimType])
    verify.add_argument("--value", required=True)
    verify.add_argument("--file", help="File the claim appears in (for relative paths)")
    verify.add_argument("--format", default="text", choices=["text", "json"])
    verify.set_defaults(handler=_verify)

    calibration = commands.add_parser("calibration", help="Inspect or train the calibration model")
    calibration.set_defaults(handler=_calibration)
    calibration_commands = calibration.add_subparsers(dest="calibration_command", required=True)
    calibration_commands.add_parser("report", help="Print the calibration report")
    calibration_commands.add_parser("export", help="Dump data points and model as JSON")
    feedback = calibration_commands.add_parser("feedback", help="Record whether a claim turned out to be real")
    feedback.add_argument("outcome", choices=["correct", "incorrect"])
    feedback.add_argument("--type", required=True, choices=[t.value for t in ClaimType])
    feedback.add_argument("--value", required=True)
    feedback.add_argument("--file", help="File the claim appears in (for relative paths)")

    audit = commands.add_parser("audit", help="Query the firewall audit log")
    audit.add_argument("audit_command", choices=["recent", "stats"])
    audit.add_argument("--limit", type=int, default=20)
    audit.add_argument("--since", help="ISO timestamp lower bound for stats")
    audit.set_defaults(handler=_audit)

    return parser


def main(argv=None):
    """Main CLI entry point"""
    args = build_parser().parse_args(argv)
    settings = _settings(args)
    _configure_logging(settings, args.log_level)

    logger.debug(f"Running {args.command} against {settings.PROJECT_ROOT}")
    return asyncio.run(args.handler(args, settings))


if __name__ == "__main__":
    sys.exit(main())
