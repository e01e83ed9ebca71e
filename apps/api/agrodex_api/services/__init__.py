"""Pipeline orchestrators."""
