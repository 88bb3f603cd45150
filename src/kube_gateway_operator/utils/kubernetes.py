"""
Kubernetes utilities for the kube-gateway operator.

This module provides the Kubernetes client setup and the store the reconciler
reads GateServers from and writes dependents to.

Key functionality:
- Kubernetes client management and configuration
- Reading and updating GateServers (object and status subresource)
- Create-or-replace and tolerant deletion of dependent objects
"""

import asyncio
import logging
from functools import partial
from typing import Any

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from ..constants import (
    API_GROUP,
    API_VERSION,
    GATESERVER_KIND,
    GATESERVER_PLURAL,
    KIND_CLUSTER_ROLE,
    KIND_CLUSTER_ROLE_BINDING,
    KIND_OAUTH_CLIENT,
    KIND_ROLE_BINDING,
    KIND_SECRET,
    KIND_SERVICE_ACCOUNT,
    OAUTH_API_GROUP,
    OAUTH_API_VERSION,
    OAUTH_CLIENT_PLURAL,
)
from ..errors import StoreError

logger = logging.getLogger(__name__)

# Connection level failures raised by the client below ApiException
TRANSPORT_ERRORS = (urllib3.exceptions.HTTPError, OSError)

# kind -> (API class, method suffix, namespaced)
_TYPED_KINDS: dict[str, tuple[str, str, bool]] = {
    KIND_SERVICE_ACCOUNT: ("CoreV1Api", "service_account", True),
    KIND_SECRET: ("CoreV1Api", "secret", True),
    KIND_CLUSTER_ROLE: ("RbacAuthorizationV1Api", "cluster_role", False),
    KIND_ROLE_BINDING: ("RbacAuthorizationV1Api", "role_binding", True),
    KIND_CLUSTER_ROLE_BINDING: ("RbacAuthorizationV1Api", "cluster_role_binding", False),
}


def get_kubernetes_client() -> client.ApiClient:
    """
    Get configured Kubernetes API client.

    Tries the in-cluster configuration first and falls back to the local
    kubeconfig for development.

    Returns:
        Configured Kubernetes API client
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    return client.ApiClient()


def _store_error(
    operation: str, kind: str, name: str, namespace: str | None, e: Exception
) -> StoreError:
    if isinstance(e, ApiException):
        status, reason = e.status, e.reason
    else:
        # No HTTP status; the StoreError stays retryable
        status, reason = None, f"{type(e).__name__}: {e}"
    return StoreError(
        operation=operation,
        kind=kind,
        name=name,
        namespace=namespace,
        status=status,
        reason=reason,
        cause=e,
    )


class KubernetesStore:
    """
    Store for GateServers and their dependents, backed by the Kubernetes API.

    All methods are coroutines; the blocking client calls run in the default
    executor. API and connection failures surface as StoreError.
    """

    def __init__(self, k8s_client: client.ApiClient | None = None):
        self._k8s_client = k8s_client

    @property
    def k8s_client(self) -> client.ApiClient:
        if self._k8s_client is None:
            self._k8s_client = get_kubernetes_client()
        return self._k8s_client

    @property
    def custom_api(self) -> client.CustomObjectsApi:
        return client.CustomObjectsApi(self.k8s_client)

    # GateServer access

    async def fetch(self, name: str, namespace: str) -> dict[str, Any] | None:
        """
        Read a GateServer.

        Returns:
            The GateServer as a dict, or None if it does not exist
        """
        try:
            return await asyncio.to_thread(
                self.custom_api.get_namespaced_custom_object,
                group=API_GROUP,
                version=API_VERSION,
                namespace=namespace,
                plural=GATESERVER_PLURAL,
                name=name,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise _store_error("read", GATESERVER_KIND, name, namespace, e) from e
        except TRANSPORT_ERRORS as e:
            raise _store_error("read", GATESERVER_KIND, name, namespace, e) from e

    async def update(self, instance: dict[str, Any]) -> dict[str, Any]:
        """
        Replace a GateServer, e.g. to change its finalizers.

        The instance carries its resourceVersion, so a concurrent change makes
        this fail with a conflict StoreError.
        """
        name, namespace = self._identity(instance)
        try:
            return await asyncio.to_thread(
                self.custom_api.replace_namespaced_custom_object,
                group=API_GROUP,
                version=API_VERSION,
                namespace=namespace,
                plural=GATESERVER_PLURAL,
                name=name,
                body=instance,
            )
        except (ApiException, *TRANSPORT_ERRORS) as e:
            raise _store_error("update", GATESERVER_KIND, name, namespace, e) from e

    async def update_status(self, instance: dict[str, Any]) -> dict[str, Any]:
        """Replace the status subresource of a GateServer."""
        name, namespace = self._identity(instance)
        try:
            return await asyncio.to_thread(
                self.custom_api.replace_namespaced_custom_object_status,
                group=API_GROUP,
                version=API_VERSION,
                namespace=namespace,
                plural=GATESERVER_PLURAL,
                name=name,
                body=instance,
            )
        except (ApiException, *TRANSPORT_ERRORS) as e:
            raise _store_error("update status of", GATESERVER_KIND, name, namespace, e) from e

    @staticmethod
    def _identity(instance: dict[str, Any]) -> tuple[str, str]:
        metadata = instance.get("metadata", {})
        return metadata.get("name", ""), metadata.get("namespace", "")

    # Dependent objects

    async def create_or_update(self, dependent: Any) -> None:
        """
        Create a dependent object, replacing it if it already exists.

        Args:
            dependent: Dependent with kind, name, namespace and body
        """
        kind, name, namespace = dependent.kind, dependent.name, dependent.namespace
        body = self.k8s_client.sanitize_for_serialization(dependent.body)

        try:
            await asyncio.to_thread(self._operation(kind, "create", namespace, body=body))
            logger.info(f"Created {kind} {self._target(name, namespace)}")
            return
        except ApiException as e:
            if e.status != 409:
                raise _store_error("create", kind, name, namespace, e) from e
        except TRANSPORT_ERRORS as e:
            raise _store_error("create", kind, name, namespace, e) from e

        try:
            existing = await asyncio.to_thread(
                self._operation(kind, "read", namespace, name=name)
            )
            metadata = body.setdefault("metadata", {})
            metadata["resourceVersion"] = _resource_version(existing)
            owner_references = _merge_owner_references(
                existing, metadata.get("ownerReferences") or []
            )
            if owner_references:
                metadata["ownerReferences"] = owner_references
            await asyncio.to_thread(
                self._operation(kind, "replace", namespace, name=name, body=body)
            )
        except (ApiException, *TRANSPORT_ERRORS) as e:
            raise _store_error("replace", kind, name, namespace, e) from e

        logger.info(f"Replaced existing {kind} {self._target(name, namespace)}")

    async def delete(self, kind: str, name: str, namespace: str | None = None) -> bool:
        """
        Delete a dependent object. A missing object counts as deleted.

        Returns:
            True if the object was deleted, False if it was already gone
        """
        try:
            await asyncio.to_thread(self._operation(kind, "delete", namespace, name=name))
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"{kind} {self._target(name, namespace)} already deleted")
                return False
            raise _store_error("delete", kind, name, namespace, e) from e
        except TRANSPORT_ERRORS as e:
            raise _store_error("delete", kind, name, namespace, e) from e

        logger.info(f"Deleted {kind} {self._target(name, namespace)}")
        return True

    def _operation(
        self,
        kind: str,
        verb: str,
        namespace: str | None,
        name: str | None = None,
        body: dict[str, Any] | None = None,
    ):
        """Bind the client call performing ``verb`` on an object of ``kind``."""
        kwargs: dict[str, Any] = {}
        if name is not None:
            kwargs["name"] = name
        if body is not None:
            kwargs["body"] = body

        if kind == KIND_OAUTH_CLIENT:
            custom_verb = "get" if verb == "read" else verb
            method = getattr(self.custom_api, f"{custom_verb}_cluster_custom_object")
            return partial(
                method,
                group=OAUTH_API_GROUP,
                version=OAUTH_API_VERSION,
                plural=OAUTH_CLIENT_PLURAL,
                **kwargs,
            )

        if kind not in _TYPED_KINDS:
            raise ValueError(f"Unsupported dependent kind: {kind}")

        api_class, suffix, namespaced = _TYPED_KINDS[kind]
        api = getattr(client, api_class)(self.k8s_client)
        if namespaced:
            kwargs["namespace"] = namespace
            return partial(getattr(api, f"{verb}_namespaced_{suffix}"), **kwargs)
        return partial(getattr(api, f"{verb}_{suffix}"), **kwargs)

    @staticmethod
    def _target(name: str, namespace: str | None) -> str:
        return f"{namespace}/{name}" if namespace else name


def _resource_version(obj: Any) -> str | None:
    if isinstance(obj, dict):
        return obj.get("metadata", {}).get("resourceVersion")
    return obj.metadata.resource_version


def _owner_references(obj: Any) -> list[dict[str, Any]]:
    if isinstance(obj, dict):
        return obj.get("metadata", {}).get("ownerReferences") or []
    return [
        {
            "apiVersion": ref.api_version,
            "kind": ref.kind,
            "name": ref.name,
            "uid": ref.uid,
            "controller": ref.controller,
            "blockOwnerDeletion": ref.block_owner_deletion,
        }
        for ref in getattr(obj.metadata, "owner_references", None) or []
    ]


def _merge_owner_references(
    existing: Any, desired: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """
    Owner references for a replaced object: the desired ones plus the
    non-controller owners already recorded on the stored object.

    Shared objects such as the JWT secret keep one reference per GateServer
    that wrote them, so garbage collection waits for the last of them.
    """
    desired_uids = {ref.get("uid") for ref in desired}
    kept = [
        ref
        for ref in _owner_references(existing)
        if not ref.get("controller") and ref.get("uid") not in desired_uids
    ]
    return [*desired, *kept]
