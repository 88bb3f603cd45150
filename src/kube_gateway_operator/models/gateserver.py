"""
Pydantic models for GateServer resources.

This module defines type-safe data models for the GateServer specification
and status. The spec model turns the raw permission fields into a single
permission scope, so a GateServer asking for both resource and non-resource
permissions (or for neither) never gets past validation.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator

from ..constants import (
    CLUSTER_WIDE_NAMESPACE,
    CONDITION_FALSE,
    CONDITION_TRUE,
    PHASE_READY,
)

SCOPE_ERROR_BOTH = (
    "auth roles can either apply to API resources or non-resource URL paths, "
    "but not both"
)
SCOPE_ERROR_EMPTY = (
    "auth roles can either apply to API resources or non-resource URL paths, "
    "but can't be empty"
)


class GateServerPhase(str, Enum):
    """Lifecycle phase reported in the GateServer status."""

    UNPROVISIONED = ""
    READY = PHASE_READY


class ResourcePermissions(BaseModel):
    """Permissions on API resources."""

    model_config = {"frozen": True}

    scope: Literal["resource"] = "resource"
    verbs: tuple[str, ...] = ()
    api_groups: tuple[str, ...] = ()
    resources: tuple[str, ...] = ()
    resource_names: tuple[str, ...] = ()


class NonResourcePermissions(BaseModel):
    """Permissions on non-resource URL paths such as /healthz."""

    model_config = {"frozen": True}

    scope: Literal["nonResource"] = "nonResource"
    verbs: tuple[str, ...] = ()
    non_resource_urls: tuple[str, ...] = ()


PermissionScope = Annotated[
    ResourcePermissions | NonResourcePermissions, Field(discriminator="scope")
]


class GateServerSpec(BaseModel):
    """Specification of a kube-gateway proxy server."""

    model_config = {"populate_by_name": True, "frozen": True, "extra": "ignore"}

    service_account_namespace: str = Field(
        ...,
        alias="serviceAccountNamespace",
        min_length=1,
        description="Namespace the permissions apply to, '*' for cluster wide",
    )
    service_account_verbs: list[str] = Field(
        default_factory=list,
        alias="serviceAccountVerbs",
        description="Allowed verbs",
    )
    service_account_api_groups: list[str] = Field(
        default_factory=list,
        alias="serviceAccountAPIGroups",
        description="API groups of the allowed resources",
    )
    service_account_resources: list[str] = Field(
        default_factory=list,
        alias="serviceAccountResources",
        description="Allowed resources",
    )
    service_account_resource_names: list[str] = Field(
        default_factory=list,
        alias="serviceAccountResourceNames",
        description="Allowed resource names",
    )
    service_account_non_resource_urls: list[str] = Field(
        default_factory=list,
        alias="serviceAccountNonResourceURLs",
        description="Allowed non-resource URL paths",
    )
    generate_oauth_client: bool = Field(
        False,
        alias="generateOAuthClient",
        description="Also create an OpenShift OAuthClient for the gateway",
    )
    route: str | None = Field(
        None, description="Public host name of the gateway, used for OAuth redirects"
    )
    oauth_client_secret: str | None = Field(
        None,
        alias="oauthClientSecret",
        description="Secret of the OAuthClient, generated when not set",
    )

    @field_validator(
        "service_account_verbs",
        "service_account_api_groups",
        "service_account_resources",
        "service_account_resource_names",
        "service_account_non_resource_urls",
        mode="before",
    )
    @classmethod
    def none_as_empty(cls, v):
        return [] if v is None else v

    @property
    def cluster_wide(self) -> bool:
        return self.service_account_namespace == CLUSTER_WIDE_NAMESPACE

    @property
    def requests_resource_permissions(self) -> bool:
        return bool(
            self.service_account_api_groups
            or self.service_account_resources
            or self.service_account_resource_names
        )

    @property
    def requests_non_resource_permissions(self) -> bool:
        return bool(self.service_account_non_resource_urls)

    def permission_scope(self) -> ResourcePermissions | NonResourcePermissions:
        """
        Resolve the permission fields into exactly one permission scope.

        Raises:
            ValueError: If both or neither kind of permission is requested
        """
        if self.requests_resource_permissions and self.requests_non_resource_permissions:
            raise ValueError(SCOPE_ERROR_BOTH)
        if not self.requests_resource_permissions and not self.requests_non_resource_permissions:
            raise ValueError(SCOPE_ERROR_EMPTY)

        verbs = tuple(self.service_account_verbs)
        if self.requests_non_resource_permissions:
            return NonResourcePermissions(
                verbs=verbs,
                non_resource_urls=tuple(self.service_account_non_resource_urls),
            )
        return ResourcePermissions(
            verbs=verbs,
            api_groups=tuple(self.service_account_api_groups),
            resources=tuple(self.service_account_resources),
            resource_names=tuple(self.service_account_resource_names),
        )


class GateServer(BaseModel):
    """A validated GateServer: identity plus accepted spec and permission scope."""

    model_config = {"frozen": True}

    name: str
    namespace: str
    uid: str = ""
    spec: GateServerSpec
    permissions: PermissionScope

    @classmethod
    def from_spec(
        cls, name: str, namespace: str, spec: GateServerSpec, uid: str = ""
    ) -> "GateServer":
        return cls(
            name=name,
            namespace=namespace,
            uid=uid,
            spec=spec,
            permissions=spec.permission_scope(),
        )


class GateServerCondition(BaseModel):
    """
    A status condition. Conditions are only ever appended.

    Conditions written by other clients may lack fields; they are read with
    defaults so that appending to the list never fails.
    """

    model_config = {"populate_by_name": True, "extra": "allow"}

    type: str = ""
    status: Literal["True", "False", "Unknown"] = "Unknown"
    reason: str = ""
    message: str = ""
    last_transition_time: str = Field(
        default_factory=lambda: datetime.now(UTC).isoformat(),
        alias="lastTransitionTime",
    )


class GateServerStatus(BaseModel):
    """Status subresource of a GateServer."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    phase: GateServerPhase = GateServerPhase.UNPROVISIONED
    conditions: list[GateServerCondition] = Field(default_factory=list)

    @field_validator("phase", mode="before")
    @classmethod
    def none_as_unprovisioned(cls, v):
        return GateServerPhase.UNPROVISIONED if v is None else v

    @field_validator("conditions", mode="before")
    @classmethod
    def none_as_no_conditions(cls, v):
        return [] if v is None else v

    def append_condition(
        self, condition_type: str, status: bool, reason: str, message: str
    ) -> GateServerCondition:
        condition = GateServerCondition(
            type=condition_type,
            status=CONDITION_TRUE if status else CONDITION_FALSE,
            reason=reason,
            message=message,
        )
        self.conditions.append(condition)
        return condition

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
