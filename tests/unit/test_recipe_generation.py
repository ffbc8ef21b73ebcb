"""Unit tests for recipe generation, category matching and author selection."""

from __future__ import annotations

import pytest

from app.agents.recipe_writer import (
    FaqItem,
    IngredientNote,
    IngredientSection,
    InstructionStep,
    ProcessSection,
    RecipeDocument,
    RecipeWriterInput,
)
from app.core.exceptions import ContentQualityError, NoAuthorAvailableError, StageFailure
from app.services.category_matching import CategoryMatch, CategoryMatcher, tokenize
from app.services.recipe_generation import RecipeGenerationService
from tests.fakes import (
    FakeCatalog,
    image_fields,
    make_author,
    make_category,
    make_work_item,
    seo_fields,
)


def _document(**overrides: object) -> RecipeDocument:
    values: dict[str, object] = {
        "title": "Creamy Garlic Chicken Pasta",
        "slug": "Creamy Garlic Chicken Pasta!",
        "category": "Invented",
        "description": "A creamy garlic chicken pasta ready in 30 minutes.",
        "intro": "A silky garlic parmesan sauce clings to every noodle in this weeknight favourite.",
        "story": (
            "This pasta started as a fridge clean-out on a rainy Tuesday and became the dish my "
            "family now asks for every single week without fail."
        ),
        "testimonial": "My kids licked the plates clean, twice in one week!",
        "ingredients": [IngredientSection(section="Pasta", items=["400g penne"])],
        "instructions": [
            InstructionStep(step=1, instruction="Boil the pasta."),
            InstructionStep(step=2, instruction="Sear the chicken."),
            InstructionStep(step=3, instruction="Make the sauce."),
        ],
        "why_you_love": ["Fast", "Creamy", "Cozy"],
        "ingredient_guide": [
            IngredientNote(ingredient="Parmesan", note="Grate it fresh."),
            IngredientNote(ingredient="Garlic", note="Do not brown it."),
        ],
        "complete_process": [ProcessSection(title="Prep", items=["Chop"])],
        "faq": [FaqItem(question=f"Q{n}", answer="A") for n in range(3)],
        "must_know_tips": ["Salt the water", "Reserve pasta water"],
        "professional_secrets": ["Finish in the pan", "Use fresh garlic"],
        "notes": ["Keeps 3 days", "Reheat gently"],
        "tools": ["Pot", "Skillet"],
    }
    values.update(overrides)
    return RecipeDocument(**values)


class _FakeWriter:
    def __init__(self, document: RecipeDocument | None = None, error: Exception | None = None) -> None:
        self.document = document or _document()
        self.error = error
        self.inputs: list[RecipeWriterInput] = []

    async def run(self, input_data: RecipeWriterInput) -> RecipeDocument:
        self.inputs.append(input_data)
        if self.error is not None:
            raise self.error
        return self.document


def _ready_item():
    return make_work_item(
        status="READY_FOR_GENERATION",
        checkpoint="IMAGES_COMPLETE",
        **seo_fields(),
        **image_fields("item-1"),
    )


def _pasta_match() -> CategoryMatch:
    return CategoryMatch(
        category_id="cat-pasta",
        category_name="Pasta",
        category_slug="pasta",
        confidence=100.0,
    )


@pytest.mark.asyncio
async def test_generate_and_publish_pins_identity_fields() -> None:
    catalog = FakeCatalog()
    writer = _FakeWriter()
    service = RecipeGenerationService(catalog, writer=writer)  # type: ignore[arg-type]

    published = await service.generate_and_publish(
        _ready_item(),
        author=make_author(),
        category=_pasta_match(),
    )

    (recipe,) = catalog.recipes
    assert published.content_id == recipe.id
    assert published.slug == "creamy-garlic-chicken-pasta"
    assert published.url == "/recipes/creamy-garlic-chicken-pasta"
    assert recipe.category_id == "cat-pasta"
    assert recipe.document["id"] == recipe.id
    assert recipe.document["category"] == "Pasta"
    assert recipe.document["author"]["id"] == "author-1"
    assert recipe.document["feature_image"] == "/uploads/generated/item-1-1.webp"
    assert recipe.document["final_presentation_image"] == "/uploads/generated/item-1-4.webp"
    assert recipe.images == [f"/uploads/generated/item-1-{slot}.webp" for slot in range(1, 5)]
    assert writer.inputs[0].seo_keyword == "garlic chicken pasta"
    assert writer.inputs[0].author_name == "Maria Rossi"


@pytest.mark.asyncio
async def test_thin_document_is_not_published() -> None:
    catalog = FakeCatalog()
    writer = _FakeWriter(_document(faq=[], story="Short."))
    service = RecipeGenerationService(catalog, writer=writer)  # type: ignore[arg-type]

    with pytest.raises(ContentQualityError) as exc_info:
        await service.generate_and_publish(_ready_item(), author=make_author(), category=None)

    assert catalog.recipes == []
    assert 'Field "faq" must have at least 3 items' in exc_info.value.errors


@pytest.mark.asyncio
async def test_writer_errors_become_recipe_stage_failures() -> None:
    service = RecipeGenerationService(
        FakeCatalog(),
        writer=_FakeWriter(error=RuntimeError("model overloaded")),  # type: ignore[arg-type]
    )

    with pytest.raises(StageFailure) as exc_info:
        await service.generate_and_publish(_ready_item(), author=make_author(), category=None)

    assert exc_info.value.stage == "RECIPE_GENERATION"
    assert "model overloaded" in exc_info.value.message


def test_tokenize_drops_stopwords_and_adds_singulars() -> None:
    assert tokenize("The Best Easy Cookies Recipe") == {"cookies", "cookie"}


@pytest.mark.asyncio
async def test_category_hint_matches_exactly() -> None:
    catalog = FakeCatalog(
        categories=[
            make_category(),
            make_category("cat-dessert", name="Dessert", slug="dessert", keywords=["cake"]),
        ]
    )

    match = await CategoryMatcher(catalog).find_best_category(  # type: ignore[arg-type]
        title="Chocolate Lava Cake",
        description=None,
        keyword="lava cake",
        category_hint="dessert",
    )

    assert match is not None
    assert match.category_id == "cat-dessert"
    assert match.confidence == 100.0


@pytest.mark.asyncio
async def test_category_below_threshold_is_not_matched() -> None:
    catalog = FakeCatalog(categories=[make_category()])

    match = await CategoryMatcher(catalog).find_best_category(  # type: ignore[arg-type]
        title="Grilled Salmon Bowl",
        description="Salmon with rice",
        keyword="salmon bowl",
        category_hint=None,
    )

    assert match is None


@pytest.mark.asyncio
async def test_select_author_requires_at_least_one_author() -> None:
    with pytest.raises(NoAuthorAvailableError):
        await CategoryMatcher(FakeCatalog()).select_author(  # type: ignore[arg-type]
            author_id=None,
            category=None,
        )


@pytest.mark.asyncio
async def test_unknown_explicit_author_falls_back_to_specialist() -> None:
    catalog = FakeCatalog(
        authors=[
            make_author("author-1"),
            make_author("author-2", name="Luca", specializations=["pasta"]),
        ]
    )

    author = await CategoryMatcher(catalog).select_author(  # type: ignore[arg-type]
        author_id="missing",
        category=_pasta_match(),
    )

    assert author.id == "author-2"
