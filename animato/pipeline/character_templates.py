"""
Character Template Library — archetypal casts used when no character
generation provider is configured or every provider has failed.

Every theme has its own entry; a missing theme fails at import time.
"""

from .models import Appearance, CharacterDraft, CharacterRole, StoryTheme

CHARACTER_TEMPLATES: dict[StoryTheme, tuple[CharacterDraft, ...]] = {
    StoryTheme.FANTASY: (
        CharacterDraft(
            name="Aria Moonwhisper",
            description="A brave elven warrior with ancient magic flowing through her veins",
            personality=["brave", "wise", "compassionate", "determined"],
            appearance=Appearance(
                age="150 (appears 25)", gender="female", ethnicity="elven",
                hair_color="silver", eye_color="emerald green", style="mystical armor",
            ),
            role=CharacterRole.PROTAGONIST,
        ),
        CharacterDraft(
            name="Thorin Ironforge",
            description="A stalwart dwarven blacksmith turned reluctant hero",
            personality=["loyal", "stubborn", "skilled", "protective"],
            appearance=Appearance(
                age="200", gender="male", ethnicity="dwarven",
                hair_color="red beard", eye_color="brown", style="battle-worn armor",
            ),
            role=CharacterRole.SUPPORTING,
        ),
    ),
    StoryTheme.SCI_FI: (
        CharacterDraft(
            name="Commander Zara Chen",
            description="A brilliant space fleet commander fighting for humanity's survival",
            personality=["strategic", "courageous", "analytical", "inspiring"],
            appearance=Appearance(
                age="32", gender="female", ethnicity="asian",
                hair_color="black", eye_color="dark brown", style="futuristic uniform",
            ),
            role=CharacterRole.PROTAGONIST,
        ),
        CharacterDraft(
            name="Dr. Marcus Webb",
            description="A xenobiologist studying alien life forms across the galaxy",
            personality=["curious", "intelligent", "cautious", "dedicated"],
            appearance=Appearance(
                age="45", gender="male", ethnicity="caucasian",
                hair_color="gray", eye_color="blue", style="research attire",
            ),
            role=CharacterRole.SUPPORTING,
        ),
    ),
    StoryTheme.ROMANCE: (
        CharacterDraft(
            name="Elena Marquez",
            description="A gifted pastry chef who left the city to reopen her grandmother's bakery",
            personality=["warm", "passionate", "independent", "hopeful"],
            appearance=Appearance(
                age="29", gender="female", ethnicity="latina",
                hair_color="dark brown", eye_color="hazel", style="flour-dusted apron",
            ),
            role=CharacterRole.PROTAGONIST,
        ),
        CharacterDraft(
            name="Julian Hart",
            description="A reserved architect restoring the old lighthouse across the harbor",
            personality=["thoughtful", "guarded", "kind", "meticulous"],
            appearance=Appearance(
                age="33", gender="male", ethnicity="caucasian",
                hair_color="sandy blond", eye_color="gray", style="rolled-up linen shirt",
            ),
            role=CharacterRole.SUPPORTING,
        ),
    ),
    StoryTheme.ADVENTURE: (
        CharacterDraft(
            name="Kai Rivers",
            description="A restless explorer chasing the map his missing father left behind",
            personality=["daring", "resourceful", "optimistic", "impulsive"],
            appearance=Appearance(
                age="27", gender="male", ethnicity="polynesian",
                hair_color="black", eye_color="brown", style="weathered travel gear",
            ),
            role=CharacterRole.PROTAGONIST,
        ),
        CharacterDraft(
            name="Captain Mara Voss",
            description="A ruthless treasure hunter racing to the same lost city",
            personality=["cunning", "ambitious", "charismatic", "ruthless"],
            appearance=Appearance(
                age="41", gender="female", ethnicity="european",
                hair_color="auburn", eye_color="green", style="long leather coat",
            ),
            role=CharacterRole.ANTAGONIST,
        ),
    ),
    StoryTheme.MYSTERY: (
        CharacterDraft(
            name="Detective Iris Blackwood",
            description="A sharp-eyed detective who never lets an unanswered question rest",
            personality=["observant", "persistent", "sardonic", "principled"],
            appearance=Appearance(
                age="38", gender="female", ethnicity="british",
                hair_color="jet black", eye_color="steel gray", style="tailored trench coat",
            ),
            role=CharacterRole.PROTAGONIST,
        ),
        CharacterDraft(
            name="Victor Lansing",
            description="A charming art collector whose alibi is a little too perfect",
            personality=["charming", "secretive", "calculating", "elegant"],
            appearance=Appearance(
                age="52", gender="male", ethnicity="caucasian",
                hair_color="silver", eye_color="blue", style="three-piece suit",
            ),
            role=CharacterRole.ANTAGONIST,
        ),
    ),
    StoryTheme.COMEDY: (
        CharacterDraft(
            name="Benny Fumbleton",
            description="An accident-prone wedding planner with one week to save the big day",
            personality=["clumsy", "earnest", "chatty", "optimistic"],
            appearance=Appearance(
                age="31", gender="male", ethnicity="irish",
                hair_color="curly ginger", eye_color="green", style="mismatched suit",
            ),
            role=CharacterRole.PROTAGONIST,
        ),
        CharacterDraft(
            name="Grandma Rosie",
            description="A sharp-tongued grandmother who sees through every excuse",
            personality=["witty", "blunt", "mischievous", "loving"],
            appearance=Appearance(
                age="78", gender="female", ethnicity="italian",
                hair_color="white bun", eye_color="brown", style="floral cardigan",
            ),
            role=CharacterRole.SUPPORTING,
        ),
    ),
    StoryTheme.DRAMA: (
        CharacterDraft(
            name="Nora Whitfield",
            description="A concert pianist returning home to face the family she left behind",
            personality=["driven", "sensitive", "proud", "conflicted"],
            appearance=Appearance(
                age="35", gender="female", ethnicity="american",
                hair_color="chestnut", eye_color="blue", style="elegant black dress",
            ),
            role=CharacterRole.PROTAGONIST,
        ),
        CharacterDraft(
            name="Samuel Whitfield",
            description="Her estranged brother who stayed to run the failing family farm",
            personality=["resentful", "hardworking", "loyal", "quiet"],
            appearance=Appearance(
                age="38", gender="male", ethnicity="american",
                hair_color="brown", eye_color="brown", style="work boots and flannel",
            ),
            role=CharacterRole.SUPPORTING,
        ),
    ),
    StoryTheme.HORROR: (
        CharacterDraft(
            name="Lily Graves",
            description="A night-shift nurse who starts hearing voices from the sealed ward",
            personality=["resilient", "skeptical", "caring", "anxious"],
            appearance=Appearance(
                age="26", gender="female", ethnicity="korean",
                hair_color="black", eye_color="dark brown", style="faded hospital scrubs",
            ),
            role=CharacterRole.PROTAGONIST,
        ),
        CharacterDraft(
            name="The Hollow Man",
            description="A faceless presence that feeds on the fear of those who see it",
            personality=["patient", "menacing", "silent", "relentless"],
            appearance=Appearance(
                age="unknown", gender="unknown", ethnicity="unknown",
                hair_color="none", eye_color="none", style="tattered funeral clothes",
            ),
            role=CharacterRole.ANTAGONIST,
        ),
    ),
}

_missing = set(StoryTheme) - set(CHARACTER_TEMPLATES)
if _missing:
    raise RuntimeError(f"Character templates missing for themes: {sorted(t.value for t in _missing)}")


def templates_for_theme(theme: StoryTheme) -> list[CharacterDraft]:
    """Return fresh copies of the template cast for a theme."""
    return [draft.model_copy(deep=True) for draft in CHARACTER_TEMPLATES[theme]]
