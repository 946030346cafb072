"""Internal constants shared across the library."""

DEFAULT_API_URL = "https://pgorelease.nianticlabs.com/plfe/rpc"
USER_AGENT = "Niantic App"

#: Request id seed; ids grow monotonically per session from here.
REQUEST_ID_SEED = 1_000_000

#: Seconds subtracted from a token's server-reported lifetime so the
#: cached expiry errs on the early side.
EXPIRY_SAFETY_SECONDS = 30
