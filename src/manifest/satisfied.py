"""Satisfied-set calculation: which dependency names are already present."""

from typing import Iterable, Mapping, Set

from .scanner import ManifestDeclaration


def list_satisfied_names(
    loaded: Iterable[ManifestDeclaration],
    aliases: Mapping[str, str],
) -> Set[str]:
    """Return dependency names satisfied by the loaded plugins.

    Unions plugin names, their ``provides`` lists, and every configured alias
    ``dep -> plugin`` whose target plugin is loaded (target matched ignoring
    case). Names are trimmed and blanks dropped; case is otherwise preserved.
    """
    loaded = list(loaded)
    names: Set[str] = set()
    for decl in loaded:
        names.add(decl.name)
        names.update(decl.provides)

    loaded_lower = {decl.name.lower() for decl in loaded}
    for dep_name, provided_by in aliases.items():
        if provided_by and provided_by.strip().lower() in loaded_lower:
            names.add(dep_name)

    return {n.strip() for n in names if n and n.strip()}
