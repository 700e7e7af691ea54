"""Fixed paths, ports and timings shared across clusterup."""

DEFAULT_IMAGE = "openshift/origin"
DEFAULT_CONTAINER_NAME = "origin"
DEFAULT_IMAGE_TAG = "latest"

CONTAINER_CONFIG_DIR = "/var/lib/origin/openshift.local.config"
CONTAINER_ETCD_DIR = "/var/lib/origin/openshift.local.etcd"

MASTER_DIR_NAME = "master"
MASTER_CONFIG_FILE = "master-config.yaml"
MASTER_CA_FILE = "ca.crt"
NODE_CONFIG_FILE = "node-config.yaml"

READINESS_PATH = "/healthz/ready"

DEFAULT_REQUIRED_PORTS = (53, 80, 443, 4001, 7001, 8443, 10250)
DEFAULT_BASE_BINDS = (
    "/:/rootfs:ro",
    "/var/run:/var/run:rw",
    "/sys:/sys:ro",
    "/var/lib/docker:/var/lib/docker",
)
MASTER_PORT = 8443
WILDCARD_DNS_SUFFIX = "xip.io"

# /proc/net/tcp state code for a listening socket
TCP_LISTEN_STATE = "0A"

DEFAULT_CONFIG_FILE_NAME = ".clusterup.yml"
