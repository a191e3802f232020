# trustplane/constants.py

DEFAULT_DOMAIN = "example.com"
DEFAULT_CERT_VALIDITY_DAYS = 365
DEFAULT_ROOT_VALIDITY_DAYS = 3650       # 10 years
DEFAULT_INTERMEDIATE_VALIDITY_DAYS = 1825   # 5 years
DEFAULT_PGP_NAME = "Example User"
DEFAULT_PGP_EMAIL = "user@example.com"
DEFAULT_PGP_EXPIRY = "2y"
DEFAULT_LOCK_TIMEOUT = 10.0

# --------- store layout ----------
ROOT_CA_DIR = "ca/root"
INTERMEDIATE_CA_DIR = "ca/intermediate"
CERTS_DIR = "certs"
KEX_DIR = "kex"
PGP_DIR = "pgp"
RECORDS_DIR = "dns/records"
BACKUP_DIR = "backup"
LOCKS_DIR = ".locks"
STAGING_DIR = ".staging"

ROOT_CA_STEM = "ca-ed448"
INTERMEDIATE_CA_STEM = "intermediate-ed448"
CHAIN_FILE = "chain.crt"

PRIVATE_FILE_MODE = 0o600
PUBLIC_FILE_MODE = 0o644

# --------- manifest kinds ----------
KIND_ROOT_CA = "root_ca"
KIND_INTERMEDIATE_CA = "intermediate_ca"
KIND_SERVER_CERT = "server_cert"
KIND_KEX = "kex"
KIND_PGP = "pgp"
KIND_ZONE = "zone"

# --------- DNS ----------
ZONE_TTL = 3600
B64_FOLD_WIDTH = 64
OWNER_COLUMN_WIDTH = 20

CERT_TYPE_PKIX = "PKIX"
CERT_TYPE_PGP = "PGP"
CERT_KEY_TAG = 0
CERT_ALGORITHM = 0

IPSECKEY_PRECEDENCE = 10
IPSECKEY_GATEWAY_TYPE = 0       # no gateway
IPSECKEY_ALGORITHM = 2          # placeholder; X25519 is identified by key length

TLSA_PORT = 443
TLSA_USAGE = 3                  # DANE-EE
TLSA_SELECTOR = 1               # SubjectPublicKeyInfo
TLSA_MATCHING_TYPE = 1          # SHA-256

CAA_ISSUER = "letsencrypt.org"
CAA_ISSUEWILD = ";"             # nobody may issue wildcards
CAA_IODEF_LOCALPART = "security"

WKD_DIRECT_URL = "https://{domain}/.well-known/openpgpkey/hu/{hash}"
WKD_ADVANCED_URL = "https://openpgpkey.{domain}/.well-known/openpgpkey/{domain}/hu/{hash}?l={local}"
