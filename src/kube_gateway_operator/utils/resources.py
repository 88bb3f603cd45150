"""
Builders for the objects a GateServer depends on.

Every function here is pure: the same GateServer (and keypair) always
yields the same definitions, and nothing talks to the cluster. The
reconciler persists what these builders return through the store.
"""

import base64
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from kubernetes import client

from ..constants import (
    API_GROUP_VERSION,
    APP_LABEL_KEY,
    GATESERVER_KIND,
    JWT_PRIVATE_KEY,
    JWT_PUBLIC_KEY,
    JWT_SECRET_NAME,
    KIND_CLUSTER_ROLE,
    KIND_CLUSTER_ROLE_BINDING,
    KIND_OAUTH_CLIENT,
    KIND_ROLE_BINDING,
    KIND_SECRET,
    KIND_SERVICE_ACCOUNT,
    OAUTH_API_GROUP,
    OAUTH_API_VERSION,
    OAUTH_CALLBACK_PATH,
    OAUTH_GRANT_METHOD,
    OPERATOR_LABEL_KEY,
    OPERATOR_LABEL_VALUE,
    RBAC_API_GROUP,
    RBAC_API_VERSION,
)
from ..errors import SynthesisError
from ..models import GateServer, NonResourcePermissions


@dataclass(frozen=True)
class Dependent:
    """A dependent object ready to be written to the cluster."""

    kind: str
    name: str
    namespace: str | None
    body: Any

    @property
    def cluster_scoped(self) -> bool:
        return self.namespace is None


def _labels(gate_server: GateServer) -> dict[str, str]:
    return {
        APP_LABEL_KEY: gate_server.name,
        OPERATOR_LABEL_KEY: OPERATOR_LABEL_VALUE,
    }


def _owner_references(
    gate_server: GateServer, namespace: str, controller: bool = True
) -> list[client.V1OwnerReference] | None:
    """Owner references only work within the owner's namespace."""
    if not gate_server.uid or namespace != gate_server.namespace:
        return None
    return [
        client.V1OwnerReference(
            api_version=API_GROUP_VERSION,
            kind=GATESERVER_KIND,
            name=gate_server.name,
            uid=gate_server.uid,
            controller=controller,
            block_owner_deletion=controller,
        )
    ]


def build_service_account(gate_server: GateServer) -> client.V1ServiceAccount:
    """Identity the gateway runs as, linked to the JWT keypair secret."""
    return client.V1ServiceAccount(
        api_version="v1",
        kind=KIND_SERVICE_ACCOUNT,
        metadata=client.V1ObjectMeta(
            name=gate_server.name,
            namespace=gate_server.namespace,
            labels=_labels(gate_server),
            owner_references=_owner_references(gate_server, gate_server.namespace),
        ),
        secrets=[client.V1ObjectReference(name=JWT_SECRET_NAME)],
    )


def build_jwt_secret(
    gate_server: GateServer, keypair: tuple[bytes, bytes]
) -> client.V1Secret:
    """
    Secret holding the JWT signing keypair.

    The secret name is shared by every GateServer of a namespace. Each of
    them is a non-controller owner, so the secret is garbage collected once
    the last one is deleted; the store merges the references on replace.

    Args:
        gate_server: GateServer the keypair is generated for
        keypair: Tuple of (private PEM, public PEM)
    """
    private_pem, public_pem = keypair
    try:
        data = {
            JWT_PUBLIC_KEY: base64.b64encode(public_pem).decode(),
            JWT_PRIVATE_KEY: base64.b64encode(private_pem).decode(),
        }
    except TypeError as e:
        raise SynthesisError(KIND_SECRET, "keypair must be PEM bytes", cause=e) from e

    return client.V1Secret(
        api_version="v1",
        kind=KIND_SECRET,
        metadata=client.V1ObjectMeta(
            name=JWT_SECRET_NAME,
            namespace=gate_server.namespace,
            labels=_labels(gate_server),
            owner_references=_owner_references(
                gate_server, gate_server.namespace, controller=False
            ),
        ),
        type="Opaque",
        data=data,
    )


def build_cluster_role(gate_server: GateServer) -> dict[str, Any]:
    """
    ClusterRole with a single rule copied from the GateServer permissions.

    Built as a plain manifest: the client model's attribute for
    nonResourceURLs differs between kubernetes client releases.
    """
    permissions = gate_server.permissions
    rule: dict[str, Any] = {"verbs": list(permissions.verbs)}
    if isinstance(permissions, NonResourcePermissions):
        rule["nonResourceURLs"] = list(permissions.non_resource_urls)
    else:
        rule["apiGroups"] = list(permissions.api_groups)
        if permissions.resources:
            rule["resources"] = list(permissions.resources)
        if permissions.resource_names:
            rule["resourceNames"] = list(permissions.resource_names)

    return {
        "apiVersion": RBAC_API_VERSION,
        "kind": KIND_CLUSTER_ROLE,
        "metadata": {
            "name": gate_server.name,
            "labels": _labels(gate_server),
        },
        "rules": [rule],
    }


def build_role_binding(
    gate_server: GateServer,
) -> client.V1RoleBinding | client.V1ClusterRoleBinding:
    """
    Bind the ClusterRole to the gateway's ServiceAccount.

    A RoleBinding in the target namespace, or a ClusterRoleBinding when the
    GateServer asks for cluster wide access.
    """
    subject = client.RbacV1Subject(
        kind=KIND_SERVICE_ACCOUNT,
        name=gate_server.name,
        namespace=gate_server.namespace,
    )
    role_ref = client.V1RoleRef(
        api_group=RBAC_API_GROUP,
        kind=KIND_CLUSTER_ROLE,
        name=gate_server.name,
    )

    if gate_server.spec.cluster_wide:
        return client.V1ClusterRoleBinding(
            api_version=RBAC_API_VERSION,
            kind=KIND_CLUSTER_ROLE_BINDING,
            metadata=client.V1ObjectMeta(
                name=gate_server.name,
                labels=_labels(gate_server),
            ),
            subjects=[subject],
            role_ref=role_ref,
        )

    target_namespace = gate_server.spec.service_account_namespace
    return client.V1RoleBinding(
        api_version=RBAC_API_VERSION,
        kind=KIND_ROLE_BINDING,
        metadata=client.V1ObjectMeta(
            name=gate_server.name,
            namespace=target_namespace,
            labels=_labels(gate_server),
            owner_references=_owner_references(gate_server, target_namespace),
        ),
        subjects=[subject],
        role_ref=role_ref,
    )


def build_oauth_client(gate_server: GateServer, client_secret: str) -> dict[str, Any]:
    """OpenShift OAuthClient letting the gateway log users in."""
    if not client_secret:
        raise SynthesisError(KIND_OAUTH_CLIENT, "client secret must not be empty")

    redirect_uris = []
    if gate_server.spec.route:
        redirect_uris.append(f"https://{gate_server.spec.route}{OAUTH_CALLBACK_PATH}")

    return {
        "apiVersion": f"{OAUTH_API_GROUP}/{OAUTH_API_VERSION}",
        "kind": KIND_OAUTH_CLIENT,
        "metadata": {
            "name": gate_server.name,
            "labels": _labels(gate_server),
        },
        "secret": client_secret,
        "redirectURIs": redirect_uris,
        "grantMethod": OAUTH_GRANT_METHOD,
    }


def _build(kind: str, builder: Callable[..., Any], *args: Any) -> Any:
    try:
        return builder(*args)
    except (TypeError, ValueError) as e:
        # Client models reject bad field values with ValueError subclasses
        raise SynthesisError(kind, str(e), cause=e) from e


def build_dependents(
    gate_server: GateServer,
    keypair: tuple[bytes, bytes],
    oauth_secret: str | None = None,
) -> list[Dependent]:
    """
    Build every dependent object of a GateServer, in the order they are written.

    Args:
        gate_server: Validated GateServer
        keypair: Tuple of (private PEM, public PEM) for the JWT secret
        oauth_secret: OAuthClient secret, required when an OAuthClient is wanted

    Returns:
        Ordered list of dependents

    Raises:
        SynthesisError: If any definition cannot be built
    """
    binding_kind = (
        KIND_CLUSTER_ROLE_BINDING if gate_server.spec.cluster_wide else KIND_ROLE_BINDING
    )
    role_binding = _build(binding_kind, build_role_binding, gate_server)

    dependents = [
        Dependent(
            kind=KIND_SERVICE_ACCOUNT,
            name=gate_server.name,
            namespace=gate_server.namespace,
            body=_build(KIND_SERVICE_ACCOUNT, build_service_account, gate_server),
        ),
        Dependent(
            kind=KIND_SECRET,
            name=JWT_SECRET_NAME,
            namespace=gate_server.namespace,
            body=_build(KIND_SECRET, build_jwt_secret, gate_server, keypair),
        ),
        Dependent(
            kind=KIND_CLUSTER_ROLE,
            name=gate_server.name,
            namespace=None,
            body=_build(KIND_CLUSTER_ROLE, build_cluster_role, gate_server),
        ),
        Dependent(
            kind=binding_kind,
            name=gate_server.name,
            namespace=role_binding.metadata.namespace,
            body=role_binding,
        ),
    ]

    if gate_server.spec.generate_oauth_client:
        dependents.append(
            Dependent(
                kind=KIND_OAUTH_CLIENT,
                name=gate_server.name,
                namespace=None,
                body=_build(
                    KIND_OAUTH_CLIENT, build_oauth_client, gate_server, oauth_secret or ""
                ),
            )
        )

    return dependents
