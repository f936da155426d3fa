"""
Product category classification from free-text titles.

Categories follow the store catalogue (Revistas EBD, Bíblias, Livros e
Devocionais, Infantil, Perfumes, Outros). Classification is keyword based,
case-insensitive and total: every title gets a tag.
"""
from typing import Tuple

REVISTAS = 'revistas'
BIBLIAS = 'biblias'
LIVROS = 'livros'
INFANTIL = 'infantil'
PERFUMES = 'perfumes'
OUTROS = 'outros'

CATEGORY_NAMES = {
    REVISTAS: 'Revistas EBD',
    BIBLIAS: 'Bíblias',
    LIVROS: 'Livros e Devocionais',
    INFANTIL: 'Infantil',
    PERFUMES: 'Perfumes',
    OUTROS: 'Outros Produtos',
}

_REVISTA_TERMS = (
    'revista', 'ebd', 'estudo bíblico', 'estudo biblico',
    'kit do professor', 'kit professor', 'infografico',
)
_BIBLIA_TERMS = ('bíblia', 'biblia')
_PERFUME_TERMS = ('perfume', 'colônia', 'fragrance')
_INFANTIL_TERMS = ('entre cores e versos', 'colorir', 'atividades infantis')

# (subcategory, terms) evaluated in order
_LIVRO_SUBCATEGORIES = (
    ('devocional', ('devocional', 'próximo nível', 'dias')),
    ('casamento', ('casamento', 'família')),
    ('lideranca', ('liderança', 'autoridade', 'ministério')),
    ('all', ('livro',)),
)
_REVISTA_AGE_GROUPS = (
    ('jovens-adultos', ('jovens e adultos', 'jovens adultos')),
    ('juvenis', ('juvenis', 'juvenil')),
    ('adolescentes', ('adolescentes', 'adolescente')),
    ('juniores', ('juniores', 'junior')),
    ('primarios', ('primários', 'primario', 'primarios')),
    ('jardim', ('jardim',)),
    ('maternal', ('maternal',)),
    ('bercario', ('berçário', 'bercario')),
    ('discipulado', ('discipulado',)),
)
_BIBLIA_SUBCATEGORIES = (
    ('estudo', ('estudo',)),
    ('mulher', ('mulher', 'vitoriosa', 'feminina')),
    ('jovem', ('jovem',)),
    ('infantil', ('infantil', 'criança', 'pequeninos')),
    ('ilustrada', ('ilustrada', 'anote')),
)


def _has_any(text: str, terms) -> bool:
    return any(term in text for term in terms)


def _first_match(text: str, table, default='all') -> str:
    for subcategory, terms in table:
        if _has_any(text, terms):
            return subcategory
    return default


def classify_with_subcategory(title: str) -> Tuple[str, str]:
    """
    Classify a product title into (category, subcategory).

    Examples:
        "Revista EBD Juvenis - Professor" -> ("revistas", "professor")
        "Bíblia de Estudo Pentecostal" -> ("biblias", "estudo")
        "Caneca personalizada" -> ("outros", "all")
    """
    text = (title or '').lower()

    if _has_any(text, _REVISTA_TERMS):
        subcategory = _first_match(text, _REVISTA_AGE_GROUPS)
        # Professor/aluno editions override the age group
        if 'professor' in text:
            subcategory = 'professor'
        elif 'aluno' in text:
            subcategory = 'aluno'
        return REVISTAS, subcategory

    if _has_any(text, _BIBLIA_TERMS):
        return BIBLIAS, _first_match(text, _BIBLIA_SUBCATEGORIES)

    if _has_any(text, _PERFUME_TERMS):
        return PERFUMES, 'all'

    if _has_any(text, _INFANTIL_TERMS):
        return INFANTIL, 'atividades'

    for subcategory, terms in _LIVRO_SUBCATEGORIES:
        if _has_any(text, terms):
            return LIVROS, subcategory

    return OUTROS, 'all'


def classify(title: str) -> str:
    """Map a product title to its category tag."""
    return classify_with_subcategory(title)[0]


def category_name(tag: str) -> str:
    """Display name for a category tag."""
    return CATEGORY_NAMES.get(tag, CATEGORY_NAMES[OUTROS])
