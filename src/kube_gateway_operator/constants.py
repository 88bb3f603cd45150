"""
Constants used throughout the kube-gateway operator.

This module defines all constant values used by the operator including:
- The GateServer API coordinates and finalizer name
- Names and keys of the dependent objects
- Status phase, condition and reason values
"""

# GateServer custom resource coordinates
API_GROUP = "ocgate.rh-fieldwork.com"
API_VERSION = "v1beta1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"
GATESERVER_KIND = "GateServer"
GATESERVER_PLURAL = "gateservers"
GATESERVER_CRD_NAME = f"{GATESERVER_PLURAL}.{API_GROUP}"

# Finalizer marking that teardown is owed before the GateServer can go away
GATESERVER_FINALIZER = f"{API_GROUP}/finalizer"

# Sentinel namespace meaning "grant cluster wide"
CLUSTER_WIDE_NAMESPACE = "*"

# Label constants for resource identification
APP_LABEL_KEY = "app"
OPERATOR_LABEL_KEY = f"{API_GROUP}/managed-by"
OPERATOR_LABEL_VALUE = "kube-gateway-operator"

# JWT keypair secret shared by all gate servers of a namespace
JWT_SECRET_NAME = "kube-gateway-jwt-secret"
JWT_PUBLIC_KEY = "cert.pem"
JWT_PRIVATE_KEY = "key.pem"
DEFAULT_JWT_KEY_SIZE = 4096
MINIMUM_JWT_KEY_SIZE = 4096

# RBAC API coordinates
RBAC_API_GROUP = "rbac.authorization.k8s.io"
RBAC_API_VERSION = f"{RBAC_API_GROUP}/v1"

# OpenShift OAuth client coordinates
OAUTH_API_GROUP = "oauth.openshift.io"
OAUTH_API_VERSION = "v1"
OAUTH_CLIENT_KIND = "OAuthClient"
OAUTH_CLIENT_PLURAL = "oauthclients"
OAUTH_GRANT_METHOD = "auto"
OAUTH_CALLBACK_PATH = "/auth/callback"

# Dependent object kinds understood by the store
KIND_SERVICE_ACCOUNT = "ServiceAccount"
KIND_SECRET = "Secret"
KIND_CLUSTER_ROLE = "ClusterRole"
KIND_ROLE_BINDING = "RoleBinding"
KIND_CLUSTER_ROLE_BINDING = "ClusterRoleBinding"
KIND_OAUTH_CLIENT = OAUTH_CLIENT_KIND

# Status phase constants
PHASE_READY = "Ready"

# Condition type constants
CONDITION_CREATED = "Created"
CONDITION_FAILED = "Failed"

# Condition status constants
CONDITION_TRUE = "True"
CONDITION_FALSE = "False"

# Condition reasons
REASON_ALL_RESOURCES_CREATED = "AllResourcesCreated"
REASON_FAILED_CREATE_SERVER = "FailedCreateServer"
REASON_FAILED_DELETE_SERVER = "FailedDeleteServer"

MESSAGE_ALL_RESOURCES_CREATED = "All resources created"

# Retry delays (in seconds) handed to kopf
DEFAULT_RETRY_DELAY = 30
CONFLICT_RETRY_DELAY = 1
