"""Pipeline orchestration and trigger loops."""
