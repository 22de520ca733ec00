"""
CLI entry point for recovery-guard.

Usage:
    recovery-guard check [root]         Check a contracts tree (default: contracts)
    recovery-guard parse <file>         Show contracts and functions of one file
    recovery-guard policy               Print the effective policy

Exit codes:
    0   every eligible function complies
    1   a function is missing a stoppable/recovery modifier
    2   the check could not run (missing root, unreadable or unparseable file, bad policy)
"""

import argparse
import json
import logging
import sys

from recovery_guard import __version__
from recovery_guard.errors import RecoveryGuardError

EXIT_OK = 0
EXIT_VIOLATION = 1
EXIT_FATAL = 2

logger = logging.getLogger(__name__)


def cmd_check(args):
    """Check a contracts tree."""
    from .checker import check_tree
    from .policy import load_policy
    from .reporting import Reporter

    policy = load_policy(args.config)
    reporter = Reporter()
    reporter.extend(check_tree(args.root, policy, collect_all=args.all))

    if reporter.ok:
        logger.info("All functions under %s comply", args.root)
        return EXIT_OK

    if args.format == "json":
        print(reporter.to_jsonl())
    else:
        print(reporter.render_human(verbose=args.verbose))
    return EXIT_VIOLATION


def cmd_parse(args):
    """Parse a file and show a contract/function summary."""
    from .checker import is_recovery_compliant, parse_unit
    from .parser import parse_source_recovering
    from .policy import load_policy
    from .scanner import load_source_unit

    policy = load_policy(args.config)
    unit = load_source_unit(args.file)

    if args.json:
        # Tree and diagnostics, even when the file does not parse
        result = parse_source_recovering(unit.text, unit.relpath)
        print(json.dumps(result.to_dict(), indent=2))
        return EXIT_OK if result.success else EXIT_FATAL

    ast = parse_unit(unit)

    print(f"Parsed: {args.file}")
    for contract in ast.get_contracts():
        prefix = "abstract " if contract.is_abstract else ""
        bases = f" is {', '.join(contract.base_contracts)}" if contract.base_contracts else ""
        print(f"{prefix}{contract.kind} {contract.name}{bases}")
        for fn in contract.get_functions():
            label = fn.name or f"<{fn.kind}>"
            mods = " ".join(fn.modifier_names)
            status = "ok" if is_recovery_compliant(fn, policy) else "MISSING GUARD"
            if not fn.name:
                status = "unchecked"
            print(f"  {label:<40} {fn.visibility:<9} {fn.state_mutability:<11} {mods:<30} {status}")
    return EXIT_OK


def cmd_policy(args):
    """Print the effective policy as YAML."""
    from .policy import load_policy

    print(load_policy(args.config).to_yaml(), end="")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recovery-guard",
        description="Check that contract functions respect recovery mode",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    recovery-guard check
    recovery-guard check ./contracts --all --format json
    recovery-guard parse contracts/Colony.sol
    recovery-guard policy --config recovery_policy.yaml
"""
    )
    parser.add_argument('--version', action='version', version=f'recovery-guard {__version__}')

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('-c', '--config', help='YAML policy file (default: $RECOVERY_GUARD_CONFIG or built-in)')
    common.add_argument('-v', '--verbose', action='store_true', help='Debug logging and detailed output')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # check
    check_p = subparsers.add_parser('check', parents=[common], help='Check a contracts tree')
    check_p.add_argument('root', nargs='?', default='contracts', help='Contracts root (default: contracts)')
    check_p.add_argument('--all', action='store_true', help='Report every violation instead of stopping at the first')
    check_p.add_argument('--format', choices=('text', 'json'), default='text', help='Output format')
    check_p.set_defaults(func=cmd_check)

    # parse
    parse_p = subparsers.add_parser('parse', parents=[common], help='Parse one source file')
    parse_p.add_argument('file', help='File to parse')
    parse_p.add_argument('--json', action='store_true', help='Dump the syntax tree and diagnostics as JSON')
    parse_p.set_defaults(func=cmd_parse)

    # policy
    policy_p = subparsers.add_parser('policy', parents=[common], help='Print the effective policy')
    policy_p.set_defaults(func=cmd_policy)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        return args.func(args)
    except RecoveryGuardError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FATAL
    except Exception as e:
        # Exit status 1 is reserved for violations
        logger.debug("Unhandled error", exc_info=True)
        print(f"error: {type(e).__name__}: {e}", file=sys.stderr)
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
