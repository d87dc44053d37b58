from importlib import import_module

# field_lock and versions register session flush guards on import
modules = [
    'lifecycle',
    'field_lock',
    'consent',
    'cycles',
    'versions',
    'reviewers',
    'submissions',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
