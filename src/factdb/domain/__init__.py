"""Domain layer: entities, value objects and services of the fact database."""
