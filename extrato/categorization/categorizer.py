"""
Keyword Categorizer

categorize() maps a transaction description to a category name. It is a
pure function: normalize, try an exact keyword match, then the first
keyword contained in the description, else "Outros".

Table order is the tie-break. More specific keywords must come before
the generic ones they contain ("mercado livre" before "mercado",
"amazon prime" before "amazon", "imposto" before "posto").
"""

from extrato.categorization.taxonomy import FALLBACK_CATEGORY, normalize_text


# (normalized keyword, category name), in priority order
CATEGORY_KEYWORDS: tuple[tuple[str, str], ...] = (
    # Paying the card bill is not a new expense category
    ("pagamento de fatura", "Cartão de crédito"),
    ("pagamento fatura", "Cartão de crédito"),
    ("pagamento cartao", "Cartão de crédito"),

    ("imposto", "Impostos"),
    ("iof", "Impostos"),
    ("tarifa", "Impostos"),
    ("anuidade", "Impostos"),
    ("ipva", "Impostos"),
    ("iptu", "Impostos"),

    ("ifood", "Alimentação"),
    ("restaurante", "Alimentação"),
    ("burger", "Alimentação"),
    ("mcdonalds", "Alimentação"),
    ("subway", "Alimentação"),
    ("padaria", "Alimentação"),
    ("pizzaria", "Alimentação"),
    ("lanchonete", "Alimentação"),

    ("uber", "Transporte"),
    ("99app", "Transporte"),
    ("posto", "Transporte"),
    ("ipiranga", "Transporte"),
    ("shell", "Transporte"),
    ("estacionamento", "Transporte"),
    ("pedagio", "Transporte"),

    ("amazon prime", "Assinaturas"),
    ("amazonprime", "Assinaturas"),
    ("netflix", "Assinaturas"),
    ("spotify", "Assinaturas"),
    ("apple.com", "Assinaturas"),
    ("google", "Assinaturas"),
    ("disney", "Assinaturas"),
    ("hbo", "Assinaturas"),

    ("farmacia", "Saúde"),
    ("drogaria", "Saúde"),
    ("drogasil", "Saúde"),
    ("droga raia", "Saúde"),
    ("pague menos", "Saúde"),
    ("hospital", "Saúde"),
    ("laboratorio", "Saúde"),

    ("mercadolivre", "Compras"),
    ("mercado livre", "Compras"),
    ("supermercado", "Mercado"),
    ("mercado", "Mercado"),
    ("atacadao", "Mercado"),
    ("carrefour", "Mercado"),
    ("assai", "Mercado"),
    ("pao de acucar", "Mercado"),
    ("hortifruti", "Mercado"),

    ("shopee", "Compras"),
    ("magalu", "Compras"),
    ("aliexpress", "Compras"),
    ("shein", "Compras"),
    ("americanas", "Compras"),
    ("amazon", "Compras"),

    ("academia", "Bem-estar"),
    ("smartfit", "Bem-estar"),
    ("petshop", "Pets"),
    ("petz", "Pets"),
    ("cobasi", "Pets"),
    ("faculdade", "Educação"),
    ("udemy", "Educação"),
    ("cinema", "Lazer"),
    ("ingresso", "Lazer"),
    ("airbnb", "Viagem"),
    ("hotel", "Viagem"),
    ("booking", "Viagem"),

    ("salario", "Salário"),
    ("estorno", "Reembolso"),
    ("reembolso", "Reembolso"),
    ("cashback", "Cashback"),
    ("rendimento", "Investimentos"),
)

_EXACT = {keyword: category for keyword, category in reversed(CATEGORY_KEYWORDS)}


def categorize(description: str) -> str:
    """Return the category name for a description, or "Outros"."""
    text = normalize_text(description or "")
    if not text:
        return FALLBACK_CATEGORY
    if text in _EXACT:
        return _EXACT[text]
    for keyword, category in CATEGORY_KEYWORDS:
        if keyword in text:
            return category
    return FALLBACK_CATEGORY


# Material Symbols icon per keyword, used for custom categories
ICON_KEYWORDS: dict[str, str] = {
    # Food and drink
    "alimentos": "restaurant",
    "bebidas": "local_bar",
    "restaurante": "restaurant",
    "ifood": "delivery_dining",
    "delivery": "delivery_dining",
    "lanche": "fastfood",
    "burger": "lunch_dining",
    "pizza": "local_pizza",
    "padaria": "bakery_dining",
    "doce": "icecream",
    "cafe": "coffee",
    "mercado": "shopping_cart",
    "supermercado": "store",
    "acougue": "kebab_dining",

    # Transport and vehicles
    "transporte": "directions_bus",
    "uber": "directions_car",
    "taxi": "local_taxi",
    "carro": "directions_car",
    "veiculo": "directions_car",
    "moto": "two_wheeler",
    "combustivel": "local_gas_station",
    "gasolina": "local_gas_station",
    "estacionamento": "local_parking",
    "oficina": "home_repair_service",
    "pedagio": "toll",
    "multa": "gavel",
    "ipva": "directions_car",

    # Home
    "casa": "home",
    "moradia": "home",
    "aluguel": "real_estate_agent",
    "condominio": "apartment",
    "energia": "bolt",
    "luz": "lightbulb",
    "agua": "water_drop",
    "gas": "propane",
    "internet": "router",
    "telefonia": "smartphone",
    "celular": "phone_iphone",
    "streaming": "movie",
    "netflix": "movie",
    "spotify": "music_note",
    "limpeza": "cleaning_services",
    "moveis": "chair",

    # Health
    "saude": "medical_services",
    "medico": "health_and_safety",
    "hospital": "local_hospital",
    "farmacia": "medication",
    "drogaria": "medication",
    "dentista": "dentistry",
    "terapia": "psychology",
    "academia": "fitness_center",
    "beleza": "face",
    "estetica": "spa",
    "cabelo": "content_cut",

    # Shopping
    "compras": "shopping_bag",
    "loja": "storefront",
    "shopping": "mall",
    "vestuario": "checkroom",
    "roupa": "checkroom",
    "eletronicos": "devices",
    "presente": "featured_seasonal_and_gifts",
    "brinquedo": "toys",

    # Education
    "educacao": "school",
    "escola": "school",
    "faculdade": "history_edu",
    "curso": "menu_book",
    "livro": "book",

    # Leisure
    "lazer": "sports_esports",
    "game": "videogame_asset",
    "cinema": "theaters",
    "viagem": "flight",
    "hotel": "bed",
    "ferias": "beach_access",

    # Money
    "salario": "payments",
    "pagamento": "receipt_long",
    "freelance": "laptop_mac",
    "bonus": "military_tech",
    "comissao": "trending_up",
    "investimento": "show_chart",
    "dividendo": "pie_chart",
    "juros": "percent",
    "cashback": "currency_exchange",
    "reembolso": "undo",
    "pix": "sync_alt",
    "transferencia": "swap_horiz",
    "resgate": "move_to_inbox",
    "poupanca": "savings",
    "imposto": "account_balance",
    "taxa": "gavel",
    "tarifa": "credit_card",

    # Pets and family
    "pet": "pets",
    "veterinario": "medical_information",
    "familia": "diversity_3",
    "doacao": "volunteer_activism",
    "servicos": "home_repair_service",
}

DEFAULT_ICON = "category"


def icon_for_category(name: str) -> str:
    """Pick an icon for a category name: exact keyword, then contained keyword."""
    text = normalize_text(name or "")
    if text in ICON_KEYWORDS:
        return ICON_KEYWORDS[text]
    for keyword, icon in ICON_KEYWORDS.items():
        if keyword in text:
            return icon
    return DEFAULT_ICON
