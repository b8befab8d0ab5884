"""Pure domain layer: values, DTOs, workflow tables, clocks.  No I/O."""
