"""Background workers - the reconciliation driver, prefetch pool and run control."""
