"""Pure domain layer: transaction vocabulary, lifecycles, actor context, DTOs."""
