"""Pure domain layer: value objects, catalog snapshots, orders, session settings."""
