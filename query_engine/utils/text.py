"""Naming helpers shared by the miners, the classifier and the adapters."""
import re

IRREGULAR_PLURALS = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "foot": "feet",
    "tooth": "teeth",
    "goose": "geese",
    "mouse": "mice",
    "ox": "oxen",
    "category": "categories",
    "policy": "policies",
}


def _match_case(word: str, template: str) -> str:
    if template[:1].isupper():
        return word[:1].upper() + word[1:]
    return word


def pluralize(name: str) -> str:
    """Plural form of a model or entity name, keeping the leading case."""
    if not name:
        return name
    irregular = IRREGULAR_PLURALS.get(name.lower())
    if irregular:
        return _match_case(irregular, name)
    if name.endswith("y") and not re.search(r"[aeiou]y$", name, re.IGNORECASE):
        return name[:-1] + "ies"
    if name.endswith(("s", "x", "ch", "sh")):
        return name + "es"
    return name + "s"


def camel_to_snake(name: str) -> str:
    """productionRun / ProductionRun -> production_run"""
    name = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).lower()
