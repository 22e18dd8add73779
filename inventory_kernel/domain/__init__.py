"""Pure domain types: clock, workflow primitives, DTOs."""
