"""Topical vocabulary of the document corpus.

Used for query expansion, threshold adjustment and intent filtering. Terms are
lowercase stems matched as substrings.
"""

DEFAULT_SYNONYMS: dict[str, list[str]] = {
    "umwelt": ["klimaschutz", "nachhaltigkeit", "ökologie", "naturschutz"],
    "klimaschutz": ["umwelt", "nachhaltigkeit", "co2", "emission"],
    "bildung": ["schule", "universität", "ausbildung", "lernen", "lehren"],
    "wirtschaft": ["finanzen", "arbeitsplätze", "unternehmen", "arbeit"],
    "sozial": ["gesellschaft", "gemeinschaft", "solidarität", "gerechtigkeit"],
    "energie": ["strom", "erneuerbar", "solar", "wind", "photovoltaik"],
    "verkehr": ["mobilität", "transport", "öpnv", "bahn", "fahrrad"],
    "wohnen": ["miete", "bauen", "stadt", "quartier", "sozialwohnung"],
    "gesundheit": ["medizin", "pflege", "krankenhaus", "vorsorge"],
    "europa": ["eu", "europäisch", "international", "grenzüberschreitend"],
    "essen": ["ernährung", "landwirtschaft", "lebensmittel", "nahrung"],
    "ernährung": ["essen", "landwirtschaft", "lebensmittel", "gesundheit"],
    "landwirtschaft": ["ernährung", "essen", "bauern", "agrar", "lebensmittel"],
    "lebensmittel": ["essen", "ernährung", "landwirtschaft", "qualität"],
}

POLITICAL_TERMS: tuple[str, ...] = (
    "politik", "partei", "wahl", "bundestag", "regierung", "minister", "grün", "grüne",
)

DEFAULT_DOMAIN_TERMS: tuple[str, ...] = POLITICAL_TERMS + (
    "umwelt", "klima", "energie", "bildung", "sozial",
    "essen", "ernährung", "landwirtschaft", "lebensmittel",
)

DEFAULT_INTENT_CATEGORIES: dict[str, tuple[str, ...]] = {
    "klima_umwelt": (
        "klima", "umwelt", "co2", "emission", "nachhaltig", "ökolog", "natur", "artenschutz",
    ),
    "energie": ("energie", "strom", "solar", "wind", "photovoltaik", "erneuerbar", "kohle"),
    "verkehr": ("verkehr", "mobilität", "bahn", "öpnv", "fahrrad", "auto", "transport"),
    "bildung": ("bildung", "schule", "universität", "hochschule", "ausbildung", "kita", "lehr"),
    "soziales": ("sozial", "rente", "armut", "gerechtigkeit", "solidarität", "pflege", "gesundheit"),
    "wirtschaft": ("wirtschaft", "finanz", "steuer", "unternehmen", "arbeitsplätze", "haushalt"),
    "wohnen": ("wohnen", "miete", "wohnung", "bauen", "quartier", "stadtentwicklung"),
    "landwirtschaft": ("landwirtschaft", "ernährung", "lebensmittel", "agrar", "bauern", "tierhaltung"),
}
