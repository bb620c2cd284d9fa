# Where: tupelo_integration/runner/constants.py
# What: Ports, environment keys and defaults shared across the runner.
# Why: Testers depend on these names and values; keep them in one place.

PORT_RPC_SERVER = 50051
PORT_BOOTSTRAP = 34001

BOOTSTRAP_PEER_ID = "16Uiu2HAm3TGSEKEjagcCojSJeaT5rypaeJMKejijvYSnAjviWwV5"

ENV_RPC_HOST = "TUPELO_RPC_HOST"
ENV_BOOTSTRAP_NODES = "TUPELO_BOOTSTRAP_NODES"
ENV_VERSION = "TUPELO_VERSION"

TARGET_BOOTSTRAPPER = "bootstrapper"
TARGET_RPC_SERVER = "rpcServer"

SERVICE_BOOTSTRAP = "bootstrap"
SERVICE_RPC_SERVER = "rpc-server"

DEFAULT_CONFIG_FILE = ".tupelo-integration.yml"
DEFAULT_COMPOSE_PROJECT = "tupelo"
DEFAULT_BACKEND_COMMAND = ("rpc-server",)
DEFAULT_BUILD_PATH = "."
DEFAULT_HOST_ADDRESS = "127.0.0.1"
FALLBACK_VERSION = "snapshot"

DEFAULT_MAX_ATTEMPTS = 500
DEFAULT_ATTEMPT_TIMEOUT = 1.0
DEFAULT_ATTEMPT_DELAY = 0.5
DEFAULT_INSPECT_ATTEMPTS = 100
DEFAULT_INSPECT_DELAY = 5.0

ENV_PREFIX = "TUPELO_INTEGRATION"
ENV_MAX_ATTEMPTS = f"{ENV_PREFIX}_MAX_ATTEMPTS"
ENV_ATTEMPT_TIMEOUT = f"{ENV_PREFIX}_ATTEMPT_TIMEOUT"
ENV_ATTEMPT_DELAY = f"{ENV_PREFIX}_ATTEMPT_DELAY"
ENV_INSPECT_ATTEMPTS = f"{ENV_PREFIX}_INSPECT_ATTEMPTS"
ENV_INSPECT_DELAY = f"{ENV_PREFIX}_INSPECT_DELAY"
ENV_DOCKER_HOST = "DOCKER_HOST"
