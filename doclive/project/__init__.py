"""Glue to the surrounding toolchain: cargo metadata and the browser."""
