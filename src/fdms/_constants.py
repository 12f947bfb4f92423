"""Internal constants shared across the library."""

MOVEMENTS_STORAGE_KEY = "vectair_fdms_movements_v3"
LEGACY_MOVEMENTS_STORAGE_KEY = "vectair_fdms_movements_v1"
BOOKINGS_STORAGE_KEY = "vectair_fdms_bookings_v1"

MOVEMENTS_SCHEMA_VERSION = 3
BOOKINGS_SCHEMA_VERSION = 2

HOME_AERODROME = "EGOW"
HOME_AERODROME_NAME = "RAF Woodvale"

DEFAULT_ACTOR = "system"

# ------------------------------------------------------------------
# Formation limits
# ------------------------------------------------------------------

FORMATION_MIN_ELEMENTS = 2
FORMATION_MAX_ELEMENTS = 12

# Element fields that follow the master strip until the element edits them.
INHERITABLE_ELEMENT_FIELDS: tuple[str, ...] = ("depActual", "arrActual")

# Element aerodrome fields; empty means "inherit from master".
ELEMENT_AERODROME_FIELDS: tuple[str, ...] = ("depAd", "arrAd")

# ------------------------------------------------------------------
# Booking field groups (deep-merged on update)
# ------------------------------------------------------------------

BOOKING_NESTED_GROUPS: tuple[str, ...] = ("contact", "schedule", "aircraft", "movement", "ops", "charges")


# Suffix of the key an unreadable stored collection is copied to before
# the store starts writing over it.
UNREADABLE_KEY_SUFFIX = "_unreadable"
