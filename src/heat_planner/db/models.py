"""SQL table definitions."""

SCHEMA_VERSION = 1

# Peripheral ids of the temperature sensors.
UPPER_PERIPHERAL = "100"
LOWER_PERIPHERAL = "101"

TABLES = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id      INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL
    )
    """,

    # ── Telemetry ───────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS temperature (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        peripheral      TEXT NOT NULL,
        temperature     REAL NOT NULL,
        recorded_at     TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_temperature_peripheral ON temperature(peripheral, recorded_at)",

    """
    CREATE TABLE IF NOT EXISTS relay_state (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        upper_on        INTEGER NOT NULL,
        lower_on        INTEGER NOT NULL,
        upper_temp      REAL NOT NULL,
        lower_temp      REAL NOT NULL,
        recorded_at     TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_relay_state_recorded ON relay_state(recorded_at)",

    # ── Planning ────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS heating_plan (
        timestamp           TEXT PRIMARY KEY,
        tier                INTEGER NOT NULL,
        power_kw            REAL NOT NULL,
        price               REAL NOT NULL,
        transmission_price  REAL NOT NULL,
        total_price         REAL NOT NULL,
        actual_power        REAL NOT NULL,
        cost                REAL NOT NULL,
        t_upper             REAL NOT NULL,
        t_lower             REAL NOT NULL,
        locked              INTEGER NOT NULL DEFAULT 0,
        options_json        TEXT NOT NULL DEFAULT '{}',
        created_at          TEXT NOT NULL,
        updated_at          TEXT NOT NULL
    )
    """,

    """
    CREATE TABLE IF NOT EXISTS temperature_schedule (
        hour            TEXT PRIMARY KEY,
        limit_upper     REAL,
        limit_lower     REAL
    )
    """,
]
