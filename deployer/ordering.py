from .models import FileTask


def order_tasks(paths, sql_root):
    """Plain lexical order over the relative path.

    Numeric directory and file prefixes (00_Schema, 01_Table, ...) are the only
    dependency information; nothing is inferred from the SQL itself.
    """
    return [FileTask(path=p, source=sql_root / p) for p in sorted(set(paths))]
