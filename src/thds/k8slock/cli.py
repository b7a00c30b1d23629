"""Inspect a lock Lease, or run a command while holding one."""

import argparse
import subprocess
import sys
import typing as ty
from datetime import timedelta

from ._funcs import utc_now
from .errors import LeaseNotFoundError
from .lock import K8sLock
from .settings import make_settings
from .store import KubernetesLeaseStore
from .types import LeaseStore


def show_status(lease_name: str, namespace: str = "", store: ty.Optional[LeaseStore] = None) -> int:
    settings = make_settings(lease_name, namespace=namespace, holder_identity="status")
    store = store or KubernetesLeaseStore()
    try:
        lease = store.read(settings.lease_name, settings.namespace)
    except LeaseNotFoundError as nf:
        print(nf)
        return 1

    print(f"lease:        {lease.namespace}/{lease.name}")
    print(f"holder:       {lease.holder_identity or '-'}")
    print(f"renew_time:   {lease.renew_time or '-'}")
    print(f"acquire_time: {lease.acquire_time or '-'}")
    print(f"transitions:  {lease.lease_transitions or 0}")
    print(f"expired:      {lease.is_expired(utc_now())}")
    return 0


def run_holding(
    lease_name: str,
    command: ty.Sequence[str],
    *,
    namespace: str = "",
    holder_identity: str = "",
    lease_duration: ty.Optional[timedelta] = None,
    create_lease_if_not_exist: ty.Optional[bool] = None,
    store: ty.Optional[LeaseStore] = None,
) -> int:
    """Blocks until the lock is ours, then runs the command, renewing the Lease until it exits."""
    lock = K8sLock(
        lease_name=lease_name,
        namespace=namespace,
        holder_identity=holder_identity,
        lease_duration=lease_duration,
        create_lease_if_not_exist=create_lease_if_not_exist,
        store=store,
    )
    with lock:
        return subprocess.call(list(command))


def _split_command(argv: ty.Sequence[str]) -> ty.Tuple[ty.List[str], ty.List[str]]:
    """Everything after the first -- belongs to the command, including its own options."""
    argv = list(argv)
    if "--" not in argv:
        return argv, list()
    i = argv.index("--")
    return argv[:i], argv[i + 1 :]


def main(argv: ty.Optional[ty.Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    subparsers = parser.add_subparsers(dest="action", required=True)

    status_p = subparsers.add_parser("status", help="Show who holds a lease")
    status_p.add_argument("lease_name")
    status_p.add_argument("--namespace", "-n", default="")

    run_p = subparsers.add_parser("run", help="Run a command while holding a lease")
    run_p.add_argument("lease_name")
    run_p.add_argument("--namespace", "-n", default="")
    run_p.add_argument("--identity", default="", help="Holder identity; generated if not given.")
    run_p.add_argument("--duration", type=int, default=None, help="Lease duration in seconds.")
    run_p.add_argument(
        "--no-create",
        action="store_true",
        help="Fail instead of creating the lease if it does not exist.",
    )
    run_p.add_argument("command", nargs="*", help="The command to run, after a --")

    args_list, command = _split_command(sys.argv[1:] if argv is None else argv)
    args = parser.parse_args(args_list)
    if args.action == "status":
        return show_status(args.lease_name, args.namespace)

    command = command or args.command
    if not command:
        parser.error("a command to run is required")
    return run_holding(
        args.lease_name,
        command,
        namespace=args.namespace,
        holder_identity=args.identity,
        lease_duration=timedelta(seconds=args.duration) if args.duration else None,
        create_lease_if_not_exist=False if args.no_create else None,
    )


if __name__ == "__main__":
    raise SystemExit(main())
