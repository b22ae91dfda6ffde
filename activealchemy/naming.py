"""
Model naming and inflection helpers.
"""

import re
from dataclasses import dataclass

_IRREGULAR_PLURALS = {
    "person": "people",
    "man": "men",
    "woman": "women",
    "child": "children",
    "mouse": "mice",
}
_UNCOUNTABLE = {"equipment", "information", "money", "series", "species", "data"}


def camelize(word: str) -> str:
    """``"only_integer"`` -> ``"OnlyInteger"``; ``"file/title"`` -> ``"file.Title"``."""
    *namespace, name = str(word).split("/")
    camel = "".join(piece[:1].upper() + piece[1:] for piece in name.split("_") if piece)
    return ".".join([*namespace, camel])


def underscore(word: str) -> str:
    """``"BlogPost"`` -> ``"blog_post"``."""
    word = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", word)
    word = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", word)
    return word.replace("-", "_").lower()


def humanize(word: str) -> str:
    """``"user_name"`` -> ``"User name"``; a trailing ``_id`` is dropped."""
    word = re.sub(r"_id$", "", str(word)).replace("_", " ").strip()
    return word[:1].upper() + word[1:]


def pluralize(word: str) -> str:
    if not word:
        return word
    head, sep, last = word.rpartition("_")
    lowered = last.lower()
    if lowered in _UNCOUNTABLE:
        plural = last
    elif lowered in _IRREGULAR_PLURALS:
        plural = _IRREGULAR_PLURALS[lowered]
    elif re.search(r"[^aeiou]y$", lowered):
        plural = last[:-1] + "ies"
    elif re.search(r"(s|x|z|ch|sh)$", lowered):
        plural = last + "es"
    else:
        plural = last + "s"
    return head + sep + plural


@dataclass(frozen=True)
class ModelName:
    """Naming information for a model class, used by i18n and routing."""

    name: str
    singular: str
    plural: str
    element: str
    human: str
    i18n_key: str
    param_key: str
    route_key: str

    @classmethod
    def for_class(cls, klass: type) -> "ModelName":
        singular = underscore(klass.__name__)
        plural = pluralize(singular)
        route_key = plural if plural != singular else f"{singular}_index"
        return cls(
            name=klass.__name__,
            singular=singular,
            plural=plural,
            element=singular,
            human=humanize(singular),
            i18n_key=singular,
            param_key=singular,
            route_key=route_key,
        )

    def __str__(self) -> str:
        return self.name
