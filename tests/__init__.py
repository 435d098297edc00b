from typing import Any, Optional

from eventforge import templates

KNIGHT_CORPUS = [
    "The knight swung his sword at the dragon",
    "The dragon breathed fire upon the knight",
]

TAVERN_CORPUS = [
    "The old innkeeper poured another round of ale for the weary travelers",
    "A hooded stranger in the corner watched the door with nervous eyes",
    "The bard sang of ancient kings and forgotten battles beneath the mountain",
    "Rumors of a hidden treasure spread quickly among the merchants in the tavern",
    "The weary travelers shared stories of strange lights in the northern forest",
    "A merchant from the coast offered rare spices to anyone with coin",
    "The innkeeper warned the travelers about bandits on the northern road",
    "The hooded stranger left a sealed letter on the table and vanished",
]

def template(template_id:str, choices:Optional[list[dict[str, Any]]]=None, **kwargs:Any) -> templates.Template:
    """ a minimal valid template, kwargs override or add fields """
    data:dict[str, Any] = {
        "title": template_id.replace("_", " ").title(),
        "narrative": f'Something happens involving {template_id.lower()}.',
        "choices": choices if choices is not None else [{"text": f'Deal with {template_id.lower()}'}],
    }
    data.update(kwargs)
    return templates.load_template(template_id, data)

def choice_texts(t:templates.Template) -> list[str]:
    return [c.text for c in t.choices]
