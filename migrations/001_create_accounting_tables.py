"""
Database Migration: Create accounting tables
═══════════════════════════════════════════════════════════════════════════════

trucks, loads, fuel_purchases, truck_cost_breakdowns. Column names match the
fleet_accounting model dataclasses.

Run with: python3 migrations/001_create_accounting_tables.py
"""

import logging

from sqlalchemy import text

from fleet_accounting.database_pool import get_engine

logger = logging.getLogger(__name__)

CREATE_TRUCKS_SQL = """
CREATE TABLE IF NOT EXISTS trucks (
    id VARCHAR(64) PRIMARY KEY,
    owner_id VARCHAR(64) DEFAULT NULL,
    name VARCHAR(255) NOT NULL DEFAULT '',
    fixed_costs DECIMAL(12, 2) NOT NULL DEFAULT 0,
    variable_costs DECIMAL(12, 2) NOT NULL DEFAULT 0,
    total_miles DECIMAL(12, 2) NOT NULL DEFAULT 0,
    cost_per_mile DECIMAL(10, 2) NOT NULL DEFAULT 0,
    is_active TINYINT(1) NOT NULL DEFAULT 1,
    created_at DATETIME(6) DEFAULT NULL,
    updated_at DATETIME(6) DEFAULT NULL,
    KEY idx_owner (owner_id)
) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci;
"""

CREATE_LOADS_SQL = """
CREATE TABLE IF NOT EXISTS loads (
    id VARCHAR(64) PRIMARY KEY,
    truck_id VARCHAR(64) DEFAULT NULL,
    owner_id VARCHAR(64) DEFAULT NULL,
    status VARCHAR(20) NOT NULL DEFAULT 'pending',
    pay DECIMAL(12, 2) NOT NULL DEFAULT 0,
    miles DECIMAL(10, 2) NOT NULL DEFAULT 0,
    origin_city VARCHAR(100) DEFAULT NULL,
    origin_state CHAR(2) DEFAULT NULL,
    destination_city VARCHAR(100) DEFAULT NULL,
    destination_state CHAR(2) DEFAULT NULL,
    pickup_date DATETIME(6) DEFAULT NULL,
    delivery_date DATETIME(6) DEFAULT NULL,
    deadhead_from_city VARCHAR(100) DEFAULT NULL,
    deadhead_from_state CHAR(2) DEFAULT NULL,
    deadhead_miles DECIMAL(10, 2) NOT NULL DEFAULT 0,
    total_miles_with_deadhead DECIMAL(10, 2) DEFAULT NULL,
    rate_per_mile DECIMAL(10, 4) NOT NULL DEFAULT 0,
    profit DECIMAL(12, 2) NOT NULL DEFAULT 0,
    is_profitable TINYINT(1) NOT NULL DEFAULT 0,
    actual_fuel_cost DECIMAL(12, 2) NOT NULL DEFAULT 0,
    actual_gallons DECIMAL(10, 2) NOT NULL DEFAULT 0,
    actual_cost_per_mile DECIMAL(10, 3) NOT NULL DEFAULT 0,
    created_at DATETIME(6) DEFAULT NULL,
    updated_at DATETIME(6) DEFAULT NULL,
    KEY idx_truck_status (truck_id, status),
    KEY idx_owner (owner_id)
) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci;
"""

CREATE_FUEL_PURCHASES_SQL = """
CREATE TABLE IF NOT EXISTS fuel_purchases (
    id VARCHAR(64) PRIMARY KEY,
    truck_id VARCHAR(64) NOT NULL,
    load_id VARCHAR(64) DEFAULT NULL,
    gallons DECIMAL(10, 3) NOT NULL DEFAULT 0,
    total_cost DECIMAL(12, 2) NOT NULL DEFAULT 0,
    purchase_date DATETIME(6) DEFAULT NULL,
    fuel_type VARCHAR(10) NOT NULL DEFAULT 'diesel',
    price_per_gallon DECIMAL(8, 4) DEFAULT NULL,
    created_at DATETIME(6) DEFAULT NULL,
    KEY idx_truck (truck_id),
    KEY idx_load (load_id)
) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci;
"""

CREATE_COST_BREAKDOWNS_SQL = """
CREATE TABLE IF NOT EXISTS truck_cost_breakdowns (
    id VARCHAR(64) PRIMARY KEY,
    truck_id VARCHAR(64) NOT NULL,
    week_starting DATETIME(6) NOT NULL,
    week_ending DATETIME(6) DEFAULT NULL,

    -- Fixed (weekly)
    truck_payment DECIMAL(10, 2) NOT NULL DEFAULT 0,
    trailer_payment DECIMAL(10, 2) NOT NULL DEFAULT 0,
    elog_subscription DECIMAL(10, 2) NOT NULL DEFAULT 0,
    liability_insurance DECIMAL(10, 2) NOT NULL DEFAULT 0,
    physical_insurance DECIMAL(10, 2) NOT NULL DEFAULT 0,
    cargo_insurance DECIMAL(10, 2) NOT NULL DEFAULT 0,
    trailer_interchange DECIMAL(10, 2) NOT NULL DEFAULT 0,
    bobtail_insurance DECIMAL(10, 2) NOT NULL DEFAULT 0,
    non_trucking_liability DECIMAL(10, 2) NOT NULL DEFAULT 0,
    base_plate_deduction DECIMAL(10, 2) NOT NULL DEFAULT 0,
    company_phone DECIMAL(10, 2) NOT NULL DEFAULT 0,

    -- Variable (weekly)
    driver_pay DECIMAL(10, 2) NOT NULL DEFAULT 0,
    fuel DECIMAL(10, 2) NOT NULL DEFAULT 0,
    def_fluid DECIMAL(10, 2) NOT NULL DEFAULT 0,
    maintenance DECIMAL(10, 2) NOT NULL DEFAULT 0,
    ifta_taxes DECIMAL(10, 2) NOT NULL DEFAULT 0,
    tolls DECIMAL(10, 2) NOT NULL DEFAULT 0,
    dwell_time DECIMAL(10, 2) NOT NULL DEFAULT 0,
    reefer_fuel DECIMAL(10, 2) NOT NULL DEFAULT 0,
    truck_parking DECIMAL(10, 2) NOT NULL DEFAULT 0,

    -- Fuel efficiency
    gallons_used DECIMAL(10, 3) NOT NULL DEFAULT 0,
    avg_fuel_price DECIMAL(8, 4) NOT NULL DEFAULT 0,
    miles_per_gallon DECIMAL(6, 2) NOT NULL DEFAULT 0,

    -- Derived totals
    total_fixed_costs DECIMAL(12, 2) NOT NULL DEFAULT 0,
    total_variable_costs DECIMAL(12, 2) NOT NULL DEFAULT 0,
    total_weekly_costs DECIMAL(12, 2) NOT NULL DEFAULT 0,
    cost_per_mile DECIMAL(10, 2) NOT NULL DEFAULT 0,
    miles_this_week DECIMAL(10, 2) NOT NULL DEFAULT 0,
    total_miles_with_deadhead DECIMAL(10, 2) NOT NULL DEFAULT 0,

    created_at DATETIME(6) DEFAULT NULL,
    updated_at DATETIME(6) DEFAULT NULL,

    UNIQUE KEY unique_truck_week (truck_id, week_starting),
    KEY idx_truck_week (truck_id, week_starting)
) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci;
"""

STATEMENTS = [
    ("trucks", CREATE_TRUCKS_SQL),
    ("loads", CREATE_LOADS_SQL),
    ("fuel_purchases", CREATE_FUEL_PURCHASES_SQL),
    ("truck_cost_breakdowns", CREATE_COST_BREAKDOWNS_SQL),
]


def run_migration(engine=None) -> bool:
    """Execute the migration"""
    logger.info("🔧 Creating accounting tables...")

    engine = engine or get_engine()
    try:
        with engine.connect() as conn:
            for table, sql in STATEMENTS:
                conn.execute(text(sql))
                logger.info(f"   ✅ {table}")
            conn.commit()
        return True
    except Exception as e:
        logger.error(f"❌ Migration failed: {e}")
        return False


if __name__ == "__main__":
    from fleet_accounting.logger_config import configure_from_settings

    configure_from_settings()
    raise SystemExit(0 if run_migration() else 1)
