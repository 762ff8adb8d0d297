"""Pure domain types for the budget kernel."""
