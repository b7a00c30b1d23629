"""The only part of this library that actually talks to Kubernetes.

Everything above this module deals in LeaseRecords and our own exceptions, so that the
lock algorithm can be exercised without an API server.
"""

import typing as ty
from datetime import datetime

from kubernetes import client

from thds.core import log

from . import auth
from ._funcs import micro_time
from .errors import LeaseConflictError, LeaseNotFoundError
from .retry import F, k8s_sdk_retry
from .types import LeasePatch, LeaseRecord

logger = log.getLogger(__name__)


def to_record(lease: client.V1Lease) -> LeaseRecord:
    spec = lease.spec or client.V1LeaseSpec()
    return LeaseRecord(
        name=lease.metadata.name,
        namespace=lease.metadata.namespace,
        resource_version=lease.metadata.resource_version,
        holder_identity=spec.holder_identity,
        renew_time=spec.renew_time,
        acquire_time=spec.acquire_time,
        lease_transitions=spec.lease_transitions,
        lease_duration_seconds=spec.lease_duration_seconds,
        labels=lease.metadata.labels or dict(),
    )


def _patch_body(
    resource_version: str, spec: LeasePatch, labels: ty.Mapping[str, str]
) -> ty.Dict[str, ty.Any]:
    metadata: ty.Dict[str, ty.Any] = {"resourceVersion": resource_version}
    if labels:
        metadata["labels"] = dict(labels)
    return {
        "metadata": metadata,
        "spec": {k: micro_time(v) if isinstance(v, datetime) else v for k, v in spec.items()},
    }


class KubernetesLeaseStore:
    """Reads and writes coordination.k8s.io/v1 Leases.

    Pass an ApiClient if you have already configured one; otherwise the local kubeconfig
    (or the in-cluster service account) is loaded on first use. Credentials on an
    ApiClient you pass are yours to refresh.
    """

    def __init__(self, api_client: ty.Optional[client.ApiClient] = None) -> None:
        self._api_client = api_client

    def _api(self) -> client.CoordinationV1Api:
        if self._api_client is None:
            auth.load_config()
        return client.CoordinationV1Api(self._api_client)

    def _refresh_credentials(self) -> None:
        if self._api_client is None:
            auth.reload_config()
        else:
            logger.warning("Unauthorized with a caller-provided ApiClient; retrying as-is")

    def _retrying(self, f: F) -> F:
        return k8s_sdk_retry(on_unauthorized=self._refresh_credentials)(f)

    def read(self, name: str, namespace: str) -> LeaseRecord:
        return self._retrying(self._read)(name, namespace)

    def create(self, name: str, namespace: str, labels: ty.Mapping[str, str]) -> LeaseRecord:
        return self._retrying(self._create)(name, namespace, labels)

    def update(
        self,
        name: str,
        namespace: str,
        resource_version: str,
        spec: LeasePatch,
        labels: ty.Mapping[str, str],
    ) -> LeaseRecord:
        return self._retrying(self._update)(name, namespace, resource_version, spec, labels)

    def _read(self, name: str, namespace: str) -> LeaseRecord:
        logger.debug("Reading lease %s/%s", namespace, name)
        try:
            return to_record(self._api().read_namespaced_lease(name=name, namespace=namespace))
        except client.exceptions.ApiException as ex:
            if ex.status == 404:
                raise LeaseNotFoundError(name, namespace) from ex
            raise

    def _create(self, name: str, namespace: str, labels: ty.Mapping[str, str]) -> LeaseRecord:
        logger.info("Creating lease %s/%s", namespace, name)
        body = client.V1Lease(
            metadata=client.V1ObjectMeta(name=name, labels=dict(labels) or None),
            spec=client.V1LeaseSpec(),
        )
        try:
            return to_record(self._api().create_namespaced_lease(namespace=namespace, body=body))
        except client.exceptions.ApiException as ex:
            if ex.status == 409:
                # somebody else created it first
                raise LeaseConflictError(name, namespace) from ex
            raise

    def _update(
        self,
        name: str,
        namespace: str,
        resource_version: str,
        spec: LeasePatch,
        labels: ty.Mapping[str, str],
    ) -> LeaseRecord:
        logger.debug("Patching lease %s/%s", namespace, name, resource_version=resource_version)
        # a dict body gets sent as application/strategic-merge-patch+json, so fields we
        # leave out are untouched, and the resourceVersion makes the write conditional.
        body = _patch_body(resource_version, spec, labels)
        try:
            return to_record(
                self._api().patch_namespaced_lease(name=name, namespace=namespace, body=body)
            )
        except client.exceptions.ApiException as ex:
            if ex.status == 409:
                raise LeaseConflictError(name, namespace, resource_version) from ex
            raise
