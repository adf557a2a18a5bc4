"""
Versioned keyword tables used by domain mapping, filtering and the motors.

All entries are already normalized (lower case, no accents, no punctuation)
and are matched as substrings of normalized text. Bump VOCABULARY_VERSION on
any change so audit outputs can be traced back to the tables that produced
them.
"""

VOCABULARY_VERSION = "1.5.0"

# --- Adjudication codes ----------------------------------------------------

MEDICATION_CODE = "3101001"
MATERIAL_CODE = "3101002"
HOSPITAL_GROUP_CODE = "3000000"
UNCOVERED_CODE = "3201001"  # catch-all whose 1:1 items must be nursing acts for M1
OTHER_EXPENSES_CODE = "3201002"
CATCH_ALL_PREFIX = "320"

# Group codes that aggregate charges without a verifiable breakdown.
GENERIC_GROUP_CODES: tuple[str, ...] = (
    MATERIAL_CODE,
    UNCOVERED_CODE,
    MEDICATION_CODE,
    OTHER_EXPENSES_CODE,
    HOSPITAL_GROUP_CODE,
)

GENERIC_DESCRIPTIONS: tuple[str, ...] = (
    "insumos",
    "materiales",
    "medicamentos",
    "equipos",
    "no cubierto",
    "no arancelado",
    "gasto",
    "honorario",
)

# Uncommunicative descriptions that add opacity points.
OPAQUE_DESCRIPTIONS: tuple[str, ...] = ("no cubierto", "insumos", "gasto", "varios", "otros")

UNCOVERED_DESCRIPTIONS: tuple[str, ...] = ("no cubierto", "no contemplad", "no arancel", "prestacion no cubierta")

# --- Section signals (pre-processing and event model) ------------------------

WARD_SIGNALS: tuple[str, ...] = ("dia cama", "habitacion", "sala")
OPERATING_ROOM_SIGNALS: tuple[str, ...] = ("pabellon", "quirofano", "recuperacion", "surgery", "anestesia")
PROFESSIONAL_FEE_SIGNALS: tuple[str, ...] = ("honorario", "cirujano", "anestesista", "ayudante")
EMERGENCY_SIGNALS: tuple[str, ...] = ("urgencia",)

INFERRED_WARD_SECTION = "HOSPITALIZACION"
INFERRED_OPERATING_ROOM_SECTION = "PABELLON"
INFERRED_FEES_SECTION = "HONORARIOS MEDICOS"

# --- Drugs and supplies ------------------------------------------------------

ANESTHESIA_DRUGS: tuple[str, ...] = (
    "propofol",
    "fentanyl",
    "remifentanil",
    "sevoflurano",
    "isoflurano",
    "rocuronio",
    "cisatracurio",
    "midazolam",
    "ketamina",
    "desflurano",
    "succinil",
    "sugammadex",
    "bupivac",
    "estupefaciente",
)

KNOWN_DRUGS: tuple[str, ...] = ANESTHESIA_DRUGS + (
    "ceftriaxona",
    "metronidazol",
    "paracetamol",
    "ketorolaco",
    "omeprazol",
    "enoxaparina",
    "heparina",
    "ondansetron",
    "levosulpiride",
    "tramadol",
    "morfina",
    "ranitidina",
    "metoclopramida",
    "dexametasona",
    "clindamicina",
    "vancomicina",
    "amoxicilina",
    "ciprofloxacino",
    "cefazolina",
    "meropenem",
    "suero",
)

PHARMA_FORMS: tuple[str, ...] = (
    "ampolla",
    "vial",
    "inyectable",
    "comprimido",
    "solucion",
    "frasco",
    "infusion",
    "capsula",
    "tableta",
    "supositorio",
    "crema",
    "unguento",
    "jarabe",
    "gotas",
    "spray",
)

PHARMACY_SECTIONS: tuple[str, ...] = ("farmacia", "medicamento", "sicotropico", "estupefaciente")

# Items that are never medications even when billed from pharmacy.
MEDICATION_EXCLUSIONS: tuple[str, ...] = (
    "tubo",
    "vacuet",
    "jeringa",
    "aguja",
    "canister",
    "termometro",
    "mascarilla",
    "equipo flebo",
    "branula",
    "aposito",
    "electrodo",
    "set de aseo",
    "delantal",
    "chata",
    "bigotera",
    "aquapack",
    "ligadura",
    "calzon",
    "bandeja",
    "guante",
    "trocar",
    "hemolock",
    "bajada",
    "gasa",
)

SUPPLY_KEYWORDS: tuple[str, ...] = (
    "jeringa",
    "aguja",
    "cateter",
    "branula",
    "aposito",
    "guante",
    "equipo",
    "set de",
    "bajada",
    "electrodo",
    "trocar",
    "hemolock",
    "gasa",
    "venda",
    "tubo",
    "canister",
    "mascarilla",
    "bigotera",
    "sutura",
    "sonda",
    "torula",
    "ligadura",
    "aquapack",
)

SUPPLY_SECTIONS: tuple[str, ...] = ("material", "insumo", "equipo")

# Standard supplies that every surgical or ward package already includes.
PACKAGE_STANDARD_SUPPLIES: tuple[str, ...] = (
    "jeringa",
    "aguja",
    "torula",
    "guante",
    "electrodo",
    "bajada",
    "branula",
    "gasa",
    "aposito",
    "trocar",
    "sutura",
)

LAB_SECTIONS: tuple[str, ...] = ("laboratorio", "examen", "imagenolog", "radiolog")
LAB_KEYWORDS: tuple[str, ...] = ("hemograma", "perfil", "orina", "cultivo", "radiografia", "ecografia", "scanner")

# --- Non-clinical charges ------------------------------------------------------

AMENITY_KEYWORDS: tuple[str, ...] = (
    "kit de aseo",
    "set de aseo",
    "aseo personal",
    "pantufla",
    "cepillo dental",
    "pasta dental",
    "shampoo",
    "jabon",
    "television",
    "telefono",
    "estacionamiento",
    "alimentacion acompanante",
    "cama acompanante",
    "colacion",
    "calzon",
    "panal",
    "toalla humeda",
    "bata",
    "peineta",
    "crema corporal",
)

ADMINISTRATIVE_KEYWORDS: tuple[str, ...] = (
    "administrativ",
    "apertura de ficha",
    "fotocopia",
    "certificado",
    "tramite",
    "cargo por servicio",
    "gastos de cobranza",
    "insumos de oficina",
    "archivo clinico",
    "impresion",
)

# --- Nursing acts (M1) ---------------------------------------------------------

NURSING_ACT_KEYWORDS: tuple[str, ...] = (
    "preparacion",
    "monitorizacion",
    "uso de equipo",
    "derecho",
    "sala",
    "recargo horario",
    "instalacion via venosa",
    "curacion",
    "toma de muestra",
    "administracion de medicamento",
    "control de signos vitales",
    "enfermeria",
)

NURSING_EXEMPT_DESCRIPTIONS: tuple[str, ...] = ("pabellon", "dia cama")
