"""
Domain layer package.

Contains pure business logic: entities, value objects, domain services,
and port interfaces. Numeric work uses numpy and pandas; nothing else
outside the standard library is imported here.
No framework imports, no IO, no side effects.
"""
