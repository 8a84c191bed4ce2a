"""
Constantes globales pour DeepSeek Proxy.
"""

VERSION = "1.0.0"
SERVICE_NAME = "deepseek-proxy"

# ============================================================================
# BACKEND PAR DÉFAUT
# ============================================================================
DEFAULT_ENDPOINT = "https://api.deepseek.com"
DEFAULT_BACKEND_MODEL = "deepseek-reasoner"
DEFAULT_PORT = 9000
CHAT_COMPLETIONS_PATH = "/v1/chat/completions"

# ============================================================================
# PARAMÈTRES D'ÉCHANTILLONNAGE
# ============================================================================
DEFAULT_TEMPERATURE = 0.7

# ============================================================================
# TIMEOUTS (secondes)
# ============================================================================
SYNC_TIMEOUT = 60.0       # Timeout bout-en-bout du chemin synchrone
CONNECT_TIMEOUT = 10.0    # Connexion / handshake TLS
WRITE_TIMEOUT = 30.0
RESPONSE_HEADER_TIMEOUT = 30.0  # Attente des en-têtes de réponse en streaming
POOL_TIMEOUT = 30.0

# Pool de connexions keep-alive partagé par le transport
MAX_KEEPALIVE_CONNECTIONS = 10
MAX_CONNECTIONS = 100

# ============================================================================
# SERVER-SENT EVENTS
# ============================================================================
SSE_DATA_PREFIX = "data: "
SSE_DONE = "[DONE]"
SSE_DONE_FRAME = b"data: [DONE]\n\n"

# ============================================================================
# RAISONNEMENT
# ============================================================================
REASONING_MODE_SEPARATE = "separate"   # reasoning_content en champ distinct
REASONING_MODE_MERGED = "merged"       # reasoning_content fusionné dans content
REASONING_MODES = (REASONING_MODE_SEPARATE, REASONING_MODE_MERGED)

# ============================================================================
# CAPACITÉS DES MODÈLES BACKEND
# ============================================================================
CAP_SUPPORTS_TOOLS = "supports_tools"
CAP_IGNORES_SAMPLING = "ignores_sampling_params"
CAP_REASONING = "reasoning"
