# petflix/services/tags.py
import enum
import re
from typing import Iterable, Optional

from petflix.errors import ValidationError
from petflix.models import TAG_NAME_MAX_LEN

MAX_TAGS_PER_VIDEO = 20

# Served with the category table; bump when a synonym set changes.
SYNONYM_TABLE_VERSION = 1


class TagCategory(str, enum.Enum):
    dogs = "dogs"
    cats = "cats"
    birds = "birds"
    small_pets = "small_pets"
    fish = "fish"
    reptiles = "reptiles"
    farm = "farm"


_SYNONYMS: dict[TagCategory, frozenset[str]] = {
    TagCategory.dogs: frozenset({
        "Dog", "Dogs", "Puppy", "Puppies", "Canine", "Labrador", "Golden Retriever",
        "German Shepherd", "Husky", "Corgi", "Pug", "Beagle", "Poodle", "Bulldog",
    }),
    TagCategory.cats: frozenset({
        "Cat", "Cats", "Kitten", "Kittens", "Kitty", "Feline", "Maine Coon",
        "Siamese", "Persian", "Tabby", "Ragdoll",
    }),
    TagCategory.birds: frozenset({
        "Bird", "Birds", "Parrot", "Parakeet", "Budgie", "Cockatiel", "Cockatoo",
        "Macaw", "Canary", "Finch",
    }),
    TagCategory.small_pets: frozenset({
        "Hamster", "Guinea Pig", "Rabbit", "Bunny", "Ferret", "Gerbil", "Chinchilla",
        "Hedgehog", "Rat", "Mouse",
    }),
    TagCategory.fish: frozenset({
        "Fish", "Aquarium", "Goldfish", "Betta", "Koi", "Tropical Fish",
    }),
    TagCategory.reptiles: frozenset({
        "Reptile", "Reptiles", "Lizard", "Gecko", "Bearded Dragon", "Snake", "Turtle",
        "Tortoise", "Iguana", "Chameleon",
    }),
    TagCategory.farm: frozenset({
        "Farm", "Horse", "Pony", "Goat", "Pig", "Cow", "Chicken", "Duck", "Sheep",
        "Alpaca", "Llama",
    }),
}


def parse_category(value: Optional[str]) -> Optional[TagCategory]:
    """Map a user-facing filter value onto a category; unknown values are rejected."""
    raw = (value or "").strip().lower().replace("-", "_").replace(" ", "_")
    if not raw or raw == "all":
        return None
    try:
        return TagCategory(raw)
    except ValueError:
        valid = ", ".join(c.value for c in TagCategory)
        raise ValidationError(f"Unknown tag category '{value}'. Valid categories: {valid}") from None


def synonyms_for(category: TagCategory) -> frozenset[str]:
    return _SYNONYMS[category]


def category_table() -> dict:
    """Every category with its sorted synonyms, tagged with the table version."""
    return {
        "version": SYNONYM_TABLE_VERSION,
        "categories": {c.value: sorted(_SYNONYMS[c]) for c in TagCategory},
    }


def normalize_tag(raw: str) -> str:
    s = re.sub(r"\s+", " ", (raw or "").strip())
    return s[:TAG_NAME_MAX_LEN].rstrip()


def normalize_tags(raw_tags: Optional[Iterable[str]]) -> list[str]:
    """Trim, collapse whitespace, cap length, dedupe case-insensitively, keep order."""
    out: list[str] = []
    seen: set[str] = set()
    for raw in raw_tags or []:
        if not isinstance(raw, str):
            continue
        tag = normalize_tag(raw)
        if not tag or tag.lower() in seen:
            continue
        seen.add(tag.lower())
        out.append(tag)
        if len(out) >= MAX_TAGS_PER_VIDEO:
            break
    return out
