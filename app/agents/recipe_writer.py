"""Recipe writer agent: full recipe article from SEO metadata and images."""

import logging

from pydantic import BaseModel, Field

from app.agents.base_agent import BaseAgent

logger = logging.getLogger(__name__)


class RecipeWriterInput(BaseModel):
    """Input for the recipe writer agent."""

    recipe_id: str
    title: str
    description: str | None = None
    seo_keyword: str
    seo_title: str
    seo_description: str
    category: str | None = None
    author_name: str
    author_bio: str | None = None
    image_urls: list[str] = Field(default_factory=list)


class RecipeTiming(BaseModel):
    prep_time: str = ""
    cook_time: str = ""
    total_time: str = ""


class RecipeInfo(BaseModel):
    difficulty: str = ""
    cuisine: str = ""
    servings: str = ""
    dietary: str = ""
    course: str = ""
    method: str = ""


class IngredientSection(BaseModel):
    section: str = ""
    items: list[str] = Field(default_factory=list)


class InstructionStep(BaseModel):
    step: int
    instruction: str


class IngredientNote(BaseModel):
    ingredient: str
    note: str


class ProcessSection(BaseModel):
    title: str
    items: list[str] = Field(default_factory=list)


class FaqItem(BaseModel):
    question: str
    answer: str


class RecipeDocument(BaseModel):
    """Structured recipe article.

    Fields are deliberately lenient; depth is enforced afterwards by the
    content quality gate so a thin answer fails with a readable reason.
    """

    id: str = ""
    title: str = ""
    slug: str = ""
    category: str = ""
    description: str = ""
    short_description: str = ""
    intro: str = Field(default="", description="2-3 warm paragraphs")
    story: str = Field(default="", description="3-4 engaging paragraphs with memories")
    testimonial: str = Field(default="", description="Enthusiastic review quote")
    image_alt: str = ""
    timing: RecipeTiming = Field(default_factory=RecipeTiming)
    recipe_info: RecipeInfo = Field(default_factory=RecipeInfo)
    ingredients: list[IngredientSection] = Field(default_factory=list)
    instructions: list[InstructionStep] = Field(default_factory=list)
    why_you_love: list[str] = Field(default_factory=list)
    ingredient_guide: list[IngredientNote] = Field(default_factory=list)
    complete_process: list[ProcessSection] = Field(default_factory=list)
    faq: list[FaqItem] = Field(default_factory=list)
    must_know_tips: list[str] = Field(default_factory=list)
    professional_secrets: list[str] = Field(default_factory=list)
    serving: str = ""
    storage: str = ""
    allergy_info: str = ""
    nutrition_disclaimer: str = ""
    notes: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)


class RecipeWriterAgent(BaseAgent[RecipeWriterInput, RecipeDocument]):
    """Writes the long-form recipe article published for a work item."""

    model_tier = "standard"
    temperature = 0.8
    failure_stage = "RECIPE_GENERATION"

    @property
    def system_prompt(self) -> str:
        return """You are a recipe writer for a home-cooking food blog.

VOICE: warm, experienced home cook. Conversational, focused on feelings,
textures, smells and memories.

RULES:
- Use the provided recipe id and category verbatim
- Generate the slug from the title (lowercase-with-hyphens)
- No alcohol or pork (pork -> lamb, bacon -> turkey ham, wine -> broth)
- Fill every list with rich content, never leave one empty

DEPTH:
- 5+ why_you_love items, 4+ ingredient_guide notes, 3+ complete_process sections
- 5+ faq entries, 5+ must_know_tips, 4+ professional_secrets, 4+ notes, 6+ tools
- Detailed ingredients and 8+ instruction steps
"""

    @property
    def output_type(self) -> type[RecipeDocument]:
        return RecipeDocument

    def _build_prompt(self, input_data: RecipeWriterInput) -> str:
        lines = [
            f"Recipe id: {input_data.recipe_id}",
            f"Title: {input_data.title}",
            f"SEO keyword: {input_data.seo_keyword}",
            f"SEO title: {input_data.seo_title}",
            f"SEO description: {input_data.seo_description}",
        ]
        if input_data.description:
            lines.append(f"Source description: {input_data.description}")
        if input_data.category:
            lines.append(f"Category: {input_data.category}")
        lines.append(f"Author: {input_data.author_name}")
        if input_data.author_bio:
            lines.append(f"Author bio: {input_data.author_bio}")
        if input_data.image_urls:
            lines.append("Images (hero, ingredients, cooking, presentation):")
            lines.extend(f"- {url}" for url in input_data.image_urls)
        return "\n".join(lines)
