"""Domain layer: values, catalog entities, errors and the function sandbox."""
