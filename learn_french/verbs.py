"""Verb conjugation constants: subject keys, groups and known irregulars."""

from typing import Dict, List

SUBJECTS = ("je", "tu", "il", "nous", "vous", "ils")

# "4" is the catch-all for irregular verbs.
VERB_GROUPS = ("1", "2", "3", "4")

PLACEHOLDER_FORMS: List[str] = [""]


def derive_group(infinitive: str) -> str:
    """Conjugation group from the infinitive's ending."""
    ending = infinitive.strip().lower()
    if ending.endswith("er"):
        return "1"
    if ending.endswith("ir"):
        return "2"
    if ending.endswith("re"):
        return "3"
    return "4"


# Present tense of common irregular verbs, used to repair stored verbs.
KNOWN_CONJUGATIONS: Dict[str, Dict[str, List[str]]] = {
    "être": {
        "je": ["suis"], "tu": ["es"], "il": ["est"],
        "nous": ["sommes"], "vous": ["êtes"], "ils": ["sont"],
    },
    "avoir": {
        "je": ["ai"], "tu": ["as"], "il": ["a"],
        "nous": ["avons"], "vous": ["avez"], "ils": ["ont"],
    },
    "faire": {
        "je": ["fais"], "tu": ["fais"], "il": ["fait"],
        "nous": ["faisons"], "vous": ["faites"], "ils": ["font"],
    },
    "aller": {
        "je": ["vais"], "tu": ["vas"], "il": ["va"],
        "nous": ["allons"], "vous": ["allez"], "ils": ["vont"],
    },
    "dire": {
        "je": ["dis"], "tu": ["dis"], "il": ["dit"],
        "nous": ["disons"], "vous": ["dites"], "ils": ["disent"],
    },
    "voir": {
        "je": ["vois"], "tu": ["vois"], "il": ["voit"],
        "nous": ["voyons"], "vous": ["voyez"], "ils": ["voient"],
    },
    "pouvoir": {
        "je": ["peux", "puis"], "tu": ["peux"], "il": ["peut"],
        "nous": ["pouvons"], "vous": ["pouvez"], "ils": ["peuvent"],
    },
    "vouloir": {
        "je": ["veux"], "tu": ["veux"], "il": ["veut"],
        "nous": ["voulons"], "vous": ["voulez"], "ils": ["veulent"],
    },
    "prendre": {
        "je": ["prends"], "tu": ["prends"], "il": ["prend"],
        "nous": ["prenons"], "vous": ["prenez"], "ils": ["prennent"],
    },
    "mettre": {
        "je": ["mets"], "tu": ["mets"], "il": ["met"],
        "nous": ["mettons"], "vous": ["mettez"], "ils": ["mettent"],
    },
}
