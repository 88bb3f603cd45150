"""
Unit tests for KubernetesStore.

The Kubernetes API classes are patched, so these tests check which client
calls the store makes and how API errors are translated.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError, ProtocolError

from kube_gateway_operator.errors import StoreError
from kube_gateway_operator.utils.kubernetes import KubernetesStore
from kube_gateway_operator.utils.resources import Dependent

MODULE = "kube_gateway_operator.utils.kubernetes.client"


@pytest.fixture
def k8s_client():
    api_client = MagicMock()
    api_client.sanitize_for_serialization.side_effect = lambda body: dict(body)
    return api_client


@pytest.fixture
def store(k8s_client):
    return KubernetesStore(k8s_client)


def instance(resource_version="7"):
    return {
        "metadata": {
            "name": "gw",
            "namespace": "team-a",
            "resourceVersion": resource_version,
        },
        "spec": {},
    }


class TestGateServerAccess:
    """Tests for reading and writing GateServers."""

    @pytest.mark.asyncio
    async def test_fetch_returns_object(self, store):
        with patch(f"{MODULE}.CustomObjectsApi") as api_class:
            api_class.return_value.get_namespaced_custom_object.return_value = instance()
            result = await store.fetch("gw", "team-a")

        assert result["metadata"]["name"] == "gw"
        kwargs = api_class.return_value.get_namespaced_custom_object.call_args.kwargs
        assert kwargs["group"] == "ocgate.rh-fieldwork.com"
        assert kwargs["version"] == "v1beta1"
        assert kwargs["plural"] == "gateservers"

    @pytest.mark.asyncio
    async def test_fetch_missing_returns_none(self, store):
        with patch(f"{MODULE}.CustomObjectsApi") as api_class:
            api_class.return_value.get_namespaced_custom_object.side_effect = (
                ApiException(status=404)
            )
            assert await store.fetch("gw", "team-a") is None

    @pytest.mark.asyncio
    async def test_fetch_error_raises_store_error(self, store):
        with patch(f"{MODULE}.CustomObjectsApi") as api_class:
            api_class.return_value.get_namespaced_custom_object.side_effect = (
                ApiException(status=500, reason="Internal Server Error")
            )
            with pytest.raises(StoreError) as exc_info:
                await store.fetch("gw", "team-a")

        assert exc_info.value.status == 500
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_update_sends_resource_version(self, store):
        with patch(f"{MODULE}.CustomObjectsApi") as api_class:
            await store.update(instance("42"))

        body = api_class.return_value.replace_namespaced_custom_object.call_args.kwargs[
            "body"
        ]
        assert body["metadata"]["resourceVersion"] == "42"

    @pytest.mark.asyncio
    async def test_update_conflict(self, store):
        with patch(f"{MODULE}.CustomObjectsApi") as api_class:
            api_class.return_value.replace_namespaced_custom_object.side_effect = (
                ApiException(status=409, reason="Conflict")
            )
            with pytest.raises(StoreError) as exc_info:
                await store.update(instance())

        assert exc_info.value.status == 409
        assert exc_info.value.delay == 1

    @pytest.mark.asyncio
    async def test_update_status_uses_status_subresource(self, store):
        with patch(f"{MODULE}.CustomObjectsApi") as api_class:
            await store.update_status(instance())

        api = api_class.return_value
        api.replace_namespaced_custom_object_status.assert_called_once()
        api.replace_namespaced_custom_object.assert_not_called()


class TestCreateOrUpdate:
    """Tests for writing dependents."""

    @pytest.mark.asyncio
    async def test_creates_namespaced_object(self, store):
        dependent = Dependent("ServiceAccount", "gw", "team-a", {"metadata": {"name": "gw"}})
        with patch(f"{MODULE}.CoreV1Api") as api_class:
            await store.create_or_update(dependent)

        api_class.return_value.create_namespaced_service_account.assert_called_once_with(
            namespace="team-a", body={"metadata": {"name": "gw"}}
        )

    @pytest.mark.asyncio
    async def test_creates_cluster_scoped_object(self, store):
        dependent = Dependent("ClusterRole", "gw", None, {"metadata": {"name": "gw"}})
        with patch(f"{MODULE}.RbacAuthorizationV1Api") as api_class:
            await store.create_or_update(dependent)

        api_class.return_value.create_cluster_role.assert_called_once_with(
            body={"metadata": {"name": "gw"}}
        )

    @pytest.mark.asyncio
    async def test_replaces_existing_object(self, store):
        dependent = Dependent("Secret", "jwt", "team-a", {"metadata": {"name": "jwt"}})
        with patch(f"{MODULE}.CoreV1Api") as api_class:
            api = api_class.return_value
            api.create_namespaced_secret.side_effect = ApiException(status=409)
            api.read_namespaced_secret.return_value = SimpleNamespace(
                metadata=SimpleNamespace(resource_version="99")
            )
            await store.create_or_update(dependent)

        kwargs = api.replace_namespaced_secret.call_args.kwargs
        assert kwargs["name"] == "jwt"
        assert kwargs["namespace"] == "team-a"
        assert kwargs["body"]["metadata"]["resourceVersion"] == "99"

    @pytest.mark.asyncio
    async def test_replace_keeps_other_non_controller_owners(self, store):
        first_owner = {"kind": "GateServer", "name": "gw-a", "uid": "a", "controller": False}
        second_owner = {"kind": "GateServer", "name": "gw-b", "uid": "b", "controller": False}
        dependent = Dependent(
            "Secret",
            "jwt",
            "team-a",
            {"metadata": {"name": "jwt", "ownerReferences": [second_owner]}},
        )
        existing_refs = [
            SimpleNamespace(
                api_version="ocgate.rh-fieldwork.com/v1beta1",
                kind="GateServer",
                name="gw-a",
                uid="a",
                controller=False,
                block_owner_deletion=False,
            ),
            SimpleNamespace(
                api_version="v1",
                kind="ConfigMap",
                name="previous-controller",
                uid="c",
                controller=True,
                block_owner_deletion=True,
            ),
        ]
        with patch(f"{MODULE}.CoreV1Api") as api_class:
            api = api_class.return_value
            api.create_namespaced_secret.side_effect = ApiException(status=409)
            api.read_namespaced_secret.return_value = SimpleNamespace(
                metadata=SimpleNamespace(
                    resource_version="3", owner_references=existing_refs
                )
            )
            await store.create_or_update(dependent)

        owners = api.replace_namespaced_secret.call_args.kwargs["body"]["metadata"][
            "ownerReferences"
        ]
        assert [o["uid"] for o in owners] == ["b", "a"]
        assert owners[1]["name"] == first_owner["name"]

    @pytest.mark.asyncio
    async def test_replace_does_not_duplicate_own_reference(self, store):
        owner = {"kind": "GateServer", "name": "gw", "uid": "a", "controller": False}
        dependent = Dependent(
            "Secret", "jwt", "team-a", {"metadata": {"name": "jwt", "ownerReferences": [owner]}}
        )
        with patch(f"{MODULE}.CoreV1Api") as api_class:
            api = api_class.return_value
            api.create_namespaced_secret.side_effect = ApiException(status=409)
            api.read_namespaced_secret.return_value = {
                "metadata": {"resourceVersion": "3", "ownerReferences": [dict(owner)]}
            }
            await store.create_or_update(dependent)

        body = api.replace_namespaced_secret.call_args.kwargs["body"]
        assert body["metadata"]["ownerReferences"] == [owner]

    @pytest.mark.asyncio
    async def test_replaces_existing_oauth_client(self, store):
        dependent = Dependent("OAuthClient", "gw", None, {"metadata": {"name": "gw"}})
        with patch(f"{MODULE}.CustomObjectsApi") as api_class:
            api = api_class.return_value
            api.create_cluster_custom_object.side_effect = ApiException(status=409)
            api.get_cluster_custom_object.return_value = {
                "metadata": {"resourceVersion": "5"}
            }
            await store.create_or_update(dependent)

        kwargs = api.replace_cluster_custom_object.call_args.kwargs
        assert kwargs["group"] == "oauth.openshift.io"
        assert kwargs["plural"] == "oauthclients"
        assert kwargs["body"]["metadata"]["resourceVersion"] == "5"

    @pytest.mark.asyncio
    async def test_forbidden_create_is_final(self, store):
        dependent = Dependent("ClusterRole", "gw", None, {"metadata": {"name": "gw"}})
        with patch(f"{MODULE}.RbacAuthorizationV1Api") as api_class:
            api_class.return_value.create_cluster_role.side_effect = ApiException(
                status=403, reason="Forbidden"
            )
            with pytest.raises(StoreError) as exc_info:
                await store.create_or_update(dependent)

        assert exc_info.value.retryable is False
        assert "HTTP 403 (Forbidden)" in exc_info.value.message


class TestDelete:
    """Tests for deleting dependents."""

    @pytest.mark.asyncio
    async def test_delete_existing(self, store):
        with patch(f"{MODULE}.RbacAuthorizationV1Api") as api_class:
            assert await store.delete("ClusterRoleBinding", "gw") is True

        api_class.return_value.delete_cluster_role_binding.assert_called_once_with(
            name="gw"
        )

    @pytest.mark.asyncio
    async def test_delete_missing_is_tolerated(self, store):
        with patch(f"{MODULE}.RbacAuthorizationV1Api") as api_class:
            api_class.return_value.delete_cluster_role.side_effect = ApiException(
                status=404
            )
            assert await store.delete("ClusterRole", "gw") is False

    @pytest.mark.asyncio
    async def test_delete_error_raises(self, store):
        with patch(f"{MODULE}.CustomObjectsApi") as api_class:
            api_class.return_value.delete_cluster_custom_object.side_effect = (
                ApiException(status=500)
            )
            with pytest.raises(StoreError) as exc_info:
                await store.delete("OAuthClient", "gw")

        assert exc_info.value.kind == "OAuthClient"

    @pytest.mark.asyncio
    async def test_unknown_kind_rejected(self, store):
        with pytest.raises(ValueError):
            await store.delete("Deployment", "gw", "team-a")


class TestConnectionFailures:
    """Tests that failures below the HTTP layer also surface as StoreError."""

    @pytest.mark.asyncio
    async def test_delete_connection_failure(self, store):
        with patch(f"{MODULE}.RbacAuthorizationV1Api") as api_class:
            api_class.return_value.delete_cluster_role.side_effect = MaxRetryError(
                None, "/apis/rbac.authorization.k8s.io/v1/clusterroles/gw"
            )
            with pytest.raises(StoreError) as exc_info:
                await store.delete("ClusterRole", "gw")

        error = exc_info.value
        assert error.status is None
        assert error.retryable
        assert "MaxRetryError" in error.message
        assert isinstance(error.cause, MaxRetryError)

    @pytest.mark.asyncio
    async def test_create_connection_reset(self, store):
        dependent = Dependent("ClusterRole", "gw", None, {"metadata": {"name": "gw"}})
        with patch(f"{MODULE}.RbacAuthorizationV1Api") as api_class:
            api_class.return_value.create_cluster_role.side_effect = ProtocolError(
                "Connection aborted."
            )
            with pytest.raises(StoreError) as exc_info:
                await store.create_or_update(dependent)

        assert exc_info.value.retryable
        assert exc_info.value.operation == "create"

    @pytest.mark.asyncio
    async def test_fetch_socket_error(self, store):
        with patch(f"{MODULE}.CustomObjectsApi") as api_class:
            api_class.return_value.get_namespaced_custom_object.side_effect = (
                ConnectionRefusedError("refused")
            )
            with pytest.raises(StoreError) as exc_info:
                await store.fetch("gw", "team-a")

        assert exc_info.value.kind == "GateServer"
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_status_update_connection_failure(self, store):
        with patch(f"{MODULE}.CustomObjectsApi") as api_class:
            api_class.return_value.replace_namespaced_custom_object_status.side_effect = (
                ProtocolError("Connection aborted.")
            )
            with pytest.raises(StoreError):
                await store.update_status(instance())
