class LeaseNotFoundError(LookupError):
    """The named Lease does not exist and we were not allowed to create it."""

    def __init__(self, name: str, namespace: str) -> None:
        super().__init__(f"Lease {namespace}/{name} does not exist")
        self.name = name
        self.namespace = namespace


class LeaseConflictError(RuntimeError):
    """Someone else wrote the Lease between our read and our write.

    This is the normal outcome of losing a race for the lock, and is never fatal.
    """

    def __init__(self, name: str, namespace: str, resource_version: str = "") -> None:
        super().__init__(
            f"Lease {namespace}/{name} was modified concurrently"
            + (f" (stale resourceVersion {resource_version})" if resource_version else "")
        )
        self.name = name
        self.namespace = namespace
        self.resource_version = resource_version
