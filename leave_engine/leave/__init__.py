"""Leave engine core: calendar, periods, policies, ledger, validator, lifecycle."""
