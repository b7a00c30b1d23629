import os
from getpass import getuser
from uuid import uuid4

from thds.core import hostname


def parse_namespace(input_str: str) -> str:
    # lowercase and replace all non-alphanumeric characters with dashes
    return "".join(c if c.isalnum() else "-" for c in input_str.lower())


def user_namespace() -> str:
    try:
        return parse_namespace(getuser())
    except (OSError, KeyError):
        return "cicd-runner"


def default_holder_identity() -> str:
    """Unique per Lock instance, but still readable enough to tell who is holding a Lease
    when you `kubectl get lease`.
    """
    return f"{hostname.friendly()}-{os.getpid()}-{uuid4().hex[:8]}"
