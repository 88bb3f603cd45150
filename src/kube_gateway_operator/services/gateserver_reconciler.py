"""
GateServer reconciliation.

The reconciler drives a GateServer through its lifecycle:

    Unprovisioned -> Ready -> Terminating -> Deleted

Provisioning happens once. A GateServer whose phase is already set is left
alone, and dependents are only removed again while the GateServer is being
deleted and still carries the operator's finalizer.
"""

import asyncio
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError as SchemaError

from ..constants import (
    CLUSTER_WIDE_NAMESPACE,
    CONDITION_CREATED,
    CONDITION_FAILED,
    GATESERVER_FINALIZER,
    KIND_CLUSTER_ROLE,
    KIND_CLUSTER_ROLE_BINDING,
    KIND_OAUTH_CLIENT,
    MESSAGE_ALL_RESOURCES_CREATED,
    REASON_ALL_RESOURCES_CREATED,
    REASON_FAILED_CREATE_SERVER,
    REASON_FAILED_DELETE_SERVER,
)
from ..errors import (
    KeyGenerationError,
    OperatorError,
    StoreError,
    SynthesisError,
    TemporaryError,
    ValidationError,
)
from ..models import GateServer, GateServerPhase, GateServerSpec, GateServerStatus
from ..observability.logging import OperatorLogger
from ..observability.metrics import metrics_collector
from ..settings import settings
from ..utils.keypair import generate_keypair
from ..utils.kubernetes import KubernetesStore
from ..utils.resources import build_dependents

RESOURCE_TYPE = "gateserver"


class GateServerState(str, Enum):
    """Lifecycle state observed on a GateServer."""

    NOT_FOUND = "NotFound"
    UNPROVISIONED = "Unprovisioned"
    READY = "Ready"
    TERMINATING = "Terminating"


class ReconcileAction(str, Enum):
    """What a reconcile ended up doing."""

    NOOP = "noop"
    PROVISIONED = "provisioned"
    PROVISION_FAILED = "provision_failed"
    TORN_DOWN = "torn_down"


@dataclass
class ReconcileResult:
    """Outcome of a single reconcile."""

    state: GateServerState
    action: ReconcileAction = ReconcileAction.NOOP
    phase: GateServerPhase | None = None
    error: str | None = None
    failed_deletions: list[str] = field(default_factory=list)


def _metadata(instance: dict[str, Any]) -> dict[str, Any]:
    return instance.setdefault("metadata", {})


def _schema_error_message(error: SchemaError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ()))
        parts.append(f"{location}: {detail.get('msg')}" if location else detail.get("msg"))
    return "; ".join(parts)


class GateServerReconciler:
    """
    Reconciler for GateServer resources.

    Every reconcile re-reads the GateServer from the store, so it can be
    invoked for any change without carrying state between calls.
    """

    def __init__(
        self,
        store: Any | None = None,
        key_size: int | None = None,
        strict_teardown: bool | None = None,
        keypair_generator: Callable[[int], tuple[bytes, bytes]] = generate_keypair,
    ):
        """
        Initialize the reconciler.

        Args:
            store: Store for GateServers and dependents, a KubernetesStore by default
            key_size: RSA modulus size for JWT keypairs
            strict_teardown: Keep the finalizer when a dependent cannot be deleted
            keypair_generator: Callable producing (private PEM, public PEM)
        """
        self.store = store if store is not None else KubernetesStore()
        self.key_size = key_size if key_size is not None else settings.jwt_key_size
        self.strict_teardown = (
            strict_teardown if strict_teardown is not None else settings.strict_teardown
        )
        self.keypair_generator = keypair_generator
        self.logger = OperatorLogger(self.__class__.__name__, RESOURCE_TYPE)

    async def reconcile(self, name: str, namespace: str) -> ReconcileResult:
        """
        Bring one GateServer closer to its declared state.

        Args:
            name: GateServer name
            namespace: GateServer namespace

        Returns:
            What the reconcile observed and did

        Raises:
            OperatorError: When the store cannot be read or written and the
                reconcile should be retried as a whole
        """
        start_time = time.time()
        self.logger.begin(name, namespace)

        try:
            instance = await self.store.fetch(name, namespace)
            state = self.observe_state(instance)
            action = {
                GateServerState.UNPROVISIONED: "provision",
                GateServerState.TERMINATING: "teardown",
            }.get(state, "noop")

            async with metrics_collector.track_reconciliation(namespace, action=action):
                if state == GateServerState.NOT_FOUND:
                    self.logger.info(
                        f"GateServer {namespace}/{name} not found, nothing to do",
                        resource_name=name,
                        namespace=namespace,
                    )
                    result = ReconcileResult(state=state)
                elif state == GateServerState.TERMINATING:
                    result = await self.teardown(instance)
                elif state == GateServerState.READY:
                    self.logger.debug(
                        f"GateServer {namespace}/{name} already provisioned",
                        resource_name=name,
                        namespace=namespace,
                    )
                    result = ReconcileResult(state=state, phase=GateServerPhase.READY)
                else:
                    result = await self.provision(instance)
        except OperatorError as e:
            self.logger.failed(name, namespace, e, time.time() - start_time)
            raise

        self.logger.finished(
            name,
            namespace,
            duration=time.time() - start_time,
            action=result.action.value,
            phase=result.phase.value if result.phase is not None else "",
        )
        return result

    def observe_state(self, instance: dict[str, Any] | None) -> GateServerState:
        """Derive the lifecycle state of a GateServer from its stored form."""
        if instance is None:
            return GateServerState.NOT_FOUND

        if _metadata(instance).get("deletionTimestamp"):
            return GateServerState.TERMINATING

        phase = (instance.get("status") or {}).get("phase") or ""
        try:
            observed = GateServerPhase(phase)
        except ValueError:
            # Anything set is treated as provisioned; the phase gate is one-shot
            self.logger.warning(
                f"Unknown phase {phase!r}, treating GateServer as provisioned",
                phase=phase,
            )
            return GateServerState.READY

        if observed == GateServerPhase.READY:
            return GateServerState.READY
        return GateServerState.UNPROVISIONED

    # Provisioning

    def validate(self, instance: dict[str, Any]) -> GateServer:
        """
        Validate the spec of a stored GateServer.

        Raises:
            ValidationError: If the spec is malformed or its permissions are
                not exactly one of resource or non-resource scoped
        """
        metadata = _metadata(instance)
        try:
            spec = GateServerSpec.model_validate(instance.get("spec") or {})
            return GateServer.from_spec(
                name=metadata.get("name", ""),
                namespace=metadata.get("namespace", ""),
                spec=spec,
                uid=metadata.get("uid", ""),
            )
        except SchemaError as e:
            raise ValidationError(_schema_error_message(e)) from e
        except ValueError as e:
            raise ValidationError(str(e)) from e

    async def provision(self, instance: dict[str, Any]) -> ReconcileResult:
        """
        Create all dependents of an unprovisioned GateServer and mark it Ready.

        Failures before the finalizer is added are recorded as a
        FailedCreateServer condition and leave the phase empty.
        """
        metadata = _metadata(instance)
        name, namespace = metadata.get("name", ""), metadata.get("namespace", "")
        status = self._load_status(instance)

        try:
            gate_server = self.validate(instance)
            keypair = await self._generate_keypair()
            oauth_secret = self._oauth_client_secret(gate_server)
            dependents = build_dependents(gate_server, keypair, oauth_secret)
            for dependent in dependents:
                await self.store.create_or_update(dependent)
        except (ValidationError, KeyGenerationError, SynthesisError, StoreError) as e:
            return await self._record_provisioning_failure(instance, status, e)

        if GATESERVER_FINALIZER not in (metadata.get("finalizers") or []):
            metadata["finalizers"] = [
                *(metadata.get("finalizers") or []),
                GATESERVER_FINALIZER,
            ]
            instance = await self.store.update(instance)
            self.logger.info(
                f"Added finalizer to GateServer {namespace}/{name}",
                resource_name=name,
                namespace=namespace,
            )

        status.phase = GateServerPhase.READY
        status.append_condition(
            CONDITION_CREATED,
            True,
            REASON_ALL_RESOURCES_CREATED,
            MESSAGE_ALL_RESOURCES_CREATED,
        )
        instance["status"] = status.to_dict()
        await self.store.update_status(instance)
        metrics_collector.record_ready(namespace)

        return ReconcileResult(
            state=GateServerState.UNPROVISIONED,
            action=ReconcileAction.PROVISIONED,
            phase=GateServerPhase.READY,
        )

    def _load_status(self, instance: dict[str, Any]) -> GateServerStatus:
        """Parse the stored status; an unreadable one is replaced by an empty status."""
        try:
            return GateServerStatus.model_validate(instance.get("status") or {})
        except SchemaError as e:
            metadata = _metadata(instance)
            self.logger.warning(
                f"Discarding unreadable status of GateServer "
                f"{metadata.get('namespace')}/{metadata.get('name')}: "
                f"{_schema_error_message(e)}",
                resource_name=metadata.get("name"),
                namespace=metadata.get("namespace"),
            )
            return GateServerStatus()

    async def _generate_keypair(self) -> tuple[bytes, bytes]:
        with metrics_collector.time_keypair_generation():
            return await asyncio.to_thread(self.keypair_generator, self.key_size)

    @staticmethod
    def _oauth_client_secret(gate_server: GateServer) -> str | None:
        if not gate_server.spec.generate_oauth_client:
            return None
        return gate_server.spec.oauth_client_secret or secrets.token_urlsafe(32)

    async def _record_provisioning_failure(
        self,
        instance: dict[str, Any],
        status: GateServerStatus,
        error: OperatorError,
    ) -> ReconcileResult:
        metadata = _metadata(instance)
        name, namespace = metadata.get("name", ""), metadata.get("namespace", "")

        self.logger.warning(
            f"Failed to create gate server {namespace}/{name}: {error.message}",
            resource_name=name,
            namespace=namespace,
            error_type=type(error).__name__,
            reason=REASON_FAILED_CREATE_SERVER,
        )
        metrics_collector.record_provisioning_failure(namespace, error.category)

        status.append_condition(
            CONDITION_FAILED, True, REASON_FAILED_CREATE_SERVER, error.message
        )
        instance["status"] = status.to_dict()
        await self.store.update_status(instance)

        # Transient store failures retry the whole reconcile
        if isinstance(error, StoreError) and error.retryable:
            raise error

        return ReconcileResult(
            state=GateServerState.UNPROVISIONED,
            action=ReconcileAction.PROVISION_FAILED,
            phase=status.phase,
            error=error.message,
        )

    # Teardown

    async def teardown(self, instance: dict[str, Any]) -> ReconcileResult:
        """
        Delete the cluster scoped dependents of a GateServer being deleted.

        Each deletion is attempted independently and a missing object counts
        as deleted. By default the finalizer is removed even when some
        deletions failed; with strict teardown it is kept and the teardown
        retried.
        """
        metadata = _metadata(instance)
        name, namespace = metadata.get("name", ""), metadata.get("namespace", "")
        finalizers = metadata.get("finalizers") or []

        if GATESERVER_FINALIZER not in finalizers:
            self.logger.debug(
                f"GateServer {namespace}/{name} has no finalizer, nothing to clean up",
                resource_name=name,
                namespace=namespace,
            )
            return ReconcileResult(state=GateServerState.TERMINATING)

        failures: list[StoreError] = []
        for kind in self.teardown_kinds(instance):
            try:
                deleted = await self.store.delete(kind, name)
            except StoreError as e:
                failures.append(e)
                metrics_collector.record_teardown_failure(kind)
                self.logger.dependent_step(
                    "failed", kind, name, namespace, reason=e.message
                )
                continue
            self.logger.dependent_step(
                "deleted" if deleted else "already_absent", kind, name, namespace
            )

        failed_deletions = [f"{e.kind}/{e.name}" for e in failures]
        if failures and self.strict_teardown:
            message = "; ".join(e.message for e in failures)
            status = self._load_status(instance)
            status.append_condition(
                CONDITION_FAILED, True, REASON_FAILED_DELETE_SERVER, message
            )
            instance["status"] = status.to_dict()
            await self.store.update_status(instance)
            raise TemporaryError(
                f"Failed to delete dependents of GateServer {namespace}/{name}: {message}"
            )

        if failures:
            self.logger.warning(
                f"Removing finalizer of GateServer {namespace}/{name} "
                f"despite failed deletions",
                resource_name=name,
                namespace=namespace,
                failed_deletions=failed_deletions,
            )

        metadata["finalizers"] = [f for f in finalizers if f != GATESERVER_FINALIZER]
        await self.store.update(instance)
        self.logger.info(
            f"Removed finalizer from GateServer {namespace}/{name}",
            resource_name=name,
            namespace=namespace,
        )

        return ReconcileResult(
            state=GateServerState.TERMINATING,
            action=ReconcileAction.TORN_DOWN,
            failed_deletions=failed_deletions,
        )

    @staticmethod
    def teardown_kinds(instance: dict[str, Any]) -> list[str]:
        """Kinds of the cluster scoped dependents to delete, read from the raw spec."""
        spec = instance.get("spec") or {}
        kinds = [KIND_CLUSTER_ROLE]
        if spec.get("serviceAccountNamespace") == CLUSTER_WIDE_NAMESPACE:
            kinds.append(KIND_CLUSTER_ROLE_BINDING)
        if spec.get("generateOAuthClient"):
            kinds.append(KIND_OAUTH_CLIENT)
        return kinds
