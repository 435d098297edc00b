""" Event templates, their storage and composition

A template is the blueprint for an event: title, narrative and choices plus
tags and metadata. Templates can be built from other templates:

    extends: one or more parents whose fields the template overlays
    mixins: templates whose choices and tags get appended
    composition: templates merged in when their conditions hold
    conditional_choices: choices shown or hidden depending on conditions
    dynamic_fields: title, narrative or choice text picked by conditions

TemplateComposer flattens all of this into a plain template for a given
context. Templates live in a TemplateStore.
"""

import abc
import copy
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Optional, Union

from eventforge import config, util
from eventforge.rules import interpreter

SCALAR_FIELDS = ("title", "narrative", "difficulty", "type")
COLLECTION_FIELDS = ("choices", "tags")
MERGE_STRATEGIES = ("append", "prepend", "replace", "merge")
DYNAMIC_TARGETS = ("title", "narrative", "choice_text")
CONTINUE_TEXT = "Continue..."

class TemplateError(ValueError):
    pass

class TemplateCycleError(TemplateError):
    pass

class TemplateNotFoundError(KeyError):
    pass

class Choice:
    def __init__(self, text:str, effect:Optional[Mapping[str, Any]]=None, consequence:Optional[str]=None, requirements:Optional[Mapping[str, Any]]=None) -> None:
        self.text = text
        self.effect:dict[str, Any] = copy.deepcopy(dict(effect or {}))
        self.consequence = consequence
        self.requirements:dict[str, Any] = copy.deepcopy(dict(requirements or {}))

    def __repr__(self) -> str:
        return f'Choice({self.text!r})'

    def __eq__(self, other:Any) -> bool:
        if not isinstance(other, Choice):
            return NotImplemented
        return self.to_json() == other.to_json()

    def to_json(self) -> dict[str, Any]:
        data:dict[str, Any] = {"text": self.text, "effect": copy.deepcopy(self.effect)}
        if self.consequence is not None:
            data["consequence"] = self.consequence
        if self.requirements:
            data["requirements"] = copy.deepcopy(self.requirements)
        return data

class Template:
    def __init__(
            self,
            template_id:str,
            title:Optional[str]=None,
            narrative:Optional[str]=None,
            choices:Optional[Iterable[Choice]]=None,
            tags:Optional[Iterable[str]]=None,
            difficulty:Optional[str]=None,
            type:Optional[str]=None,
            conditions:Optional[Sequence[Mapping[str, Any]]]=None,
            conditional_choices:Optional[Sequence[Mapping[str, Any]]]=None,
            dynamic_fields:Optional[Sequence[Mapping[str, Any]]]=None,
            extends:Optional[Union[str, Sequence[str]]]=None,
            mixins:Optional[Sequence[str]]=None,
            composition:Optional[Sequence[Mapping[str, Any]]]=None,
            replace:Optional[Sequence[str]]=None,
            abstract:bool=False,
    ) -> None:
        self.template_id = template_id
        self.title = title
        self.narrative = narrative
        self.choices:list[Choice] = list(choices or [])
        self.tags:list[str] = list(tags or [])
        self.difficulty = difficulty
        self.type = type

        self.conditions:list[Mapping[str, Any]] = copy.deepcopy(list(conditions or []))
        self.conditional_choices:list[Mapping[str, Any]] = copy.deepcopy(list(conditional_choices or []))
        self.dynamic_fields:list[Mapping[str, Any]] = copy.deepcopy(list(dynamic_fields or []))

        if isinstance(extends, str):
            extends = [extends]
        self.extends:list[str] = list(extends or [])
        self.mixins:list[str] = list(mixins or [])
        self.composition:list[Mapping[str, Any]] = copy.deepcopy(list(composition or []))
        self.replace:list[str] = list(replace or [])
        self.abstract = abstract

    def __repr__(self) -> str:
        return f'Template({self.template_id})'

    def __eq__(self, other:Any) -> bool:
        if not isinstance(other, Template):
            return NotImplemented
        return self.template_id == other.template_id and self.to_json() == other.to_json()

    def copy(self) -> "Template":
        return copy.deepcopy(self)

    def to_json(self) -> dict[str, Any]:
        data:dict[str, Any] = {}
        for field in SCALAR_FIELDS:
            if getattr(self, field) is not None:
                data[field] = getattr(self, field)
        data["choices"] = [c.to_json() for c in self.choices]
        data["tags"] = list(self.tags)
        for field in ("conditions", "conditional_choices", "dynamic_fields", "extends", "mixins", "composition", "replace"):
            value = getattr(self, field)
            if value:
                data[field] = copy.deepcopy(value)
        if self.abstract:
            data["abstract"] = True
        return data

def load_choice(template_id:str, i:int, data:Any) -> Choice:
    if not isinstance(data, Mapping):
        raise TemplateError(f'choice {i} of template {template_id} must be a table')
    if not isinstance(data.get("text"), str) or not data["text"]:
        raise TemplateError(f'choice {i} of template {template_id} has no text')
    effect = data.get("effect", {})
    if not isinstance(effect, Mapping):
        raise TemplateError(f'choice {i} of template {template_id} effect must be a table')
    for key, value in effect.items():
        if isinstance(value, (list, tuple)) and not util.is_range(value):
            raise TemplateError(f'choice {i} of template {template_id} effect {key} must be a number, a [min, max] range or a flag, got {value}')
    requirements = data.get("requirements", {})
    if not isinstance(requirements, Mapping):
        raise TemplateError(f'choice {i} of template {template_id} requirements must be a table')
    return Choice(data["text"], effect, data.get("consequence"), requirements)

def _check_list(template_id:str, field:str, value:Any, item_type:type) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, item_type) for v in value):
        raise TemplateError(f'{field} of template {template_id} must be a list of {item_type.__name__}')
    return value

def load_template(template_id:str, data:Mapping[str, Any]) -> Template:
    """ builds a Template from a table, raising TemplateError if malformed

    a template that's abstract or extends another template may leave out
    title, narrative and choices, everything else needs all three. """

    if not isinstance(data, Mapping):
        raise TemplateError(f'template {template_id} must be a table')

    extends = data.get("extends")
    if isinstance(extends, str):
        extends = [extends]
    extends = _check_list(template_id, "extends", extends, str)
    abstract = bool(data.get("abstract", False))

    if not abstract and not extends:
        for field in ("title", "narrative", "choices"):
            if not data.get(field):
                raise TemplateError(f'no {field} in template {template_id}')
    for field in SCALAR_FIELDS:
        if field in data and not isinstance(data[field], str):
            raise TemplateError(f'{field} of template {template_id} must be a string')

    choices_data = data.get("choices", [])
    if not isinstance(choices_data, list):
        raise TemplateError(f'choices of template {template_id} must be a list')
    choices = [load_choice(template_id, i, c) for i, c in enumerate(choices_data)]

    tags = _check_list(template_id, "tags", data.get("tags"), str)
    mixins = _check_list(template_id, "mixins", data.get("mixins"), str)
    replace = _check_list(template_id, "replace", data.get("replace"), str)
    for field in replace:
        if field not in COLLECTION_FIELDS:
            raise TemplateError(f'template {template_id} can only replace {COLLECTION_FIELDS}, got {field}')

    conditions = _check_list(template_id, "conditions", data.get("conditions"), Mapping)
    conditional_choices = _check_list(template_id, "conditional_choices", data.get("conditional_choices"), Mapping)
    for entry in conditional_choices:
        if not isinstance(entry.get("choice_index"), int):
            raise TemplateError(f'conditional choice in template {template_id} needs an integer choice_index')
    dynamic_fields = _check_list(template_id, "dynamic_fields", data.get("dynamic_fields"), Mapping)
    for entry in dynamic_fields:
        if entry.get("field") not in DYNAMIC_TARGETS:
            raise TemplateError(f'dynamic field in template {template_id} must target one of {DYNAMIC_TARGETS}')
        if entry["field"] == "choice_text" and not isinstance(entry.get("choice_index"), int):
            raise TemplateError(f'choice_text dynamic field in template {template_id} needs an integer choice_index')
    composition = _check_list(template_id, "composition", data.get("composition"), Mapping)
    for entry in composition:
        if not isinstance(entry.get("template_id"), str):
            raise TemplateError(f'composition entry in template {template_id} needs a template_id')
        if entry.get("merge_strategy", "append") not in MERGE_STRATEGIES:
            raise TemplateError(f'composition entry in template {template_id} has unknown merge_strategy {entry["merge_strategy"]}')

    return Template(
        template_id,
        title=data.get("title"),
        narrative=data.get("narrative"),
        choices=choices,
        tags=tags,
        difficulty=data.get("difficulty"),
        type=data.get("type"),
        conditions=conditions,
        conditional_choices=conditional_choices,
        dynamic_fields=dynamic_fields,
        extends=extends,
        mixins=mixins,
        composition=composition,
        replace=replace,
        abstract=abstract,
    )

def load_templates(data:Mapping[str, Any]) -> list[Template]:
    return [load_template(template_id, t) for template_id, t in data.items()]

def builtin_templates() -> list[Template]:
    return load_templates(config.load_data("templates.toml"))

def matches(template:Template, query:Optional[Mapping[str, Any]]) -> bool:
    """ tags match if the template has any of them, other keys must equal """
    if not query:
        return True
    if "tags" in query:
        wanted = query["tags"]
        if isinstance(wanted, str):
            wanted = [wanted]
        if not any(t in template.tags for t in wanted):
            return False
    if "type" in query and template.type != query["type"]:
        return False
    if "difficulty" in query and template.difficulty != query["difficulty"]:
        return False
    if "title_contains" in query and query["title_contains"].lower() not in (template.title or "").lower():
        return False
    return True

class TemplateStore(abc.ABC):
    """ where templates live, keyed by template id """

    @abc.abstractmethod
    def put(self, template:Template) -> None: ...

    @abc.abstractmethod
    def get(self, template_id:str) -> Optional[Template]: ...

    @abc.abstractmethod
    def remove(self, template_id:str) -> bool: ...

    @abc.abstractmethod
    def ids(self) -> list[str]: ...

    def query(self, query:Optional[Mapping[str, Any]]=None) -> list[Template]:
        result = []
        for template_id in self.ids():
            template = self.get(template_id)
            if template is not None and matches(template, query):
                result.append(template)
        return result

    def __contains__(self, template_id:str) -> bool:
        return self.get(template_id) is not None

    def __len__(self) -> int:
        return len(self.ids())

class MemoryTemplateStore(TemplateStore):
    def __init__(self, templates:Optional[Iterable[Template]]=None) -> None:
        self._templates:dict[str, Template] = {}
        for template in templates or []:
            self.put(template)

    def put(self, template:Template) -> None:
        self._templates[template.template_id] = template

    def get(self, template_id:str) -> Optional[Template]:
        return self._templates.get(template_id)

    def remove(self, template_id:str) -> bool:
        return self._templates.pop(template_id, None) is not None

    def ids(self) -> list[str]:
        return list(self._templates.keys())

def _take_scalars(target:Template, source:Template) -> None:
    for field in SCALAR_FIELDS:
        value = getattr(source, field)
        if value is not None:
            setattr(target, field, value)

def overlay(parent:Template, child:Template) -> Template:
    """ child fields on top of parent

    child scalars win, choices and tags are concatenated parent first unless
    the child lists them in replace. """

    result = parent.copy()
    result.template_id = child.template_id
    _take_scalars(result, child)
    for field in COLLECTION_FIELDS:
        if field in child.replace:
            setattr(result, field, copy.deepcopy(getattr(child, field)))
        else:
            setattr(result, field, getattr(result, field) + copy.deepcopy(getattr(child, field)))
    for field in ("conditions", "conditional_choices", "dynamic_fields", "composition", "mixins"):
        if getattr(child, field):
            setattr(result, field, copy.deepcopy(getattr(child, field)))
    result.extends = []
    result.replace = []
    result.abstract = child.abstract
    return result

def apply_mixin(template:Template, mixin:Template) -> Template:
    """ appends mixin choices (skipping duplicate text) and tags """
    result = template.copy()
    texts = set(c.text for c in result.choices)
    for choice in mixin.choices:
        if choice.text not in texts:
            result.choices.append(copy.deepcopy(choice))
            texts.add(choice.text)
    for tag in mixin.tags:
        if tag not in result.tags:
            result.tags.append(tag)
    return result

def compose(template:Template, component:Template, strategy:str) -> Template:
    result = template.copy()
    if strategy == "append":
        result.choices = result.choices + copy.deepcopy(component.choices)
        result.tags = result.tags + list(component.tags)
    elif strategy == "prepend":
        result.choices = copy.deepcopy(component.choices) + result.choices
        result.tags = list(component.tags) + result.tags
    elif strategy == "replace":
        _take_scalars(result, component)
        result.choices = copy.deepcopy(component.choices)
        result.tags = list(component.tags)
    elif strategy == "merge":
        _take_scalars(result, component)
        result.choices = result.choices + copy.deepcopy(component.choices)
        result.tags = result.tags + list(component.tags)
    else:
        raise TemplateError(f'unknown merge strategy {strategy} composing {component.template_id} into {template.template_id}')
    return result

class TemplateComposer:
    def __init__(self, store:TemplateStore, rules:Optional[interpreter.RuleInterpreter]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.store = store
        self.rules = rules or interpreter.RuleInterpreter()

    def _fetch(self, template_id:str) -> Template:
        template = self.store.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def resolve(self, template_id:str, context:Optional[Mapping[str, Any]]=None) -> Template:
        """ flattens a template for the given context

        The result has no extends, mixins, composition, conditional choices
        or dynamic fields left, so resolving it again changes nothing.

        Parameters
        ----------
        template_id : str
            the template to resolve
        context : mapping
            evaluated against composition, conditional choice and dynamic
            field conditions

        Returns
        -------
        out : Template
            a new template, the stored templates are never modified

        Raises
        ------
        TemplateNotFoundError if template_id or any template it refers to is
        missing. TemplateCycleError if templates refer to each other in a
        cycle.
        """
        return self._resolve(template_id, context or {}, [])

    def resolve_template(self, template:Template, context:Optional[Mapping[str, Any]]=None) -> Template:
        """ flattens a template that isn't (necessarily) in the store """
        return self._flatten(template, context or {}, [template.template_id])

    def _resolve(self, template_id:str, context:Mapping[str, Any], stack:list[str]) -> Template:
        if template_id in stack:
            raise TemplateCycleError(f'template cycle {" -> ".join(stack + [template_id])}')
        stack.append(template_id)
        try:
            return self._flatten(self._fetch(template_id), context, stack)
        finally:
            stack.pop()

    def _flatten(self, template:Template, context:Mapping[str, Any], stack:list[str]) -> Template:
        result = template.copy()

        if template.extends:
            base:Optional[Template] = None
            for parent_id in template.extends:
                parent = self._resolve(parent_id, context, stack)
                base = parent if base is None else overlay(base, parent)
            assert base is not None
            result = overlay(base, template)

        for mixin_id in result.mixins:
            result = apply_mixin(result, self._resolve(mixin_id, context, stack))

        # stable sort, so equal priorities keep their listed order
        for entry in sorted(result.composition, key=lambda c: -c.get("priority", 0)):
            if not self.rules.evaluate_all(entry.get("conditions"), context):
                continue
            component = self._resolve(entry["template_id"], context, stack)
            result = compose(result, component, entry.get("merge_strategy", "append"))

        # both conditional choices and dynamic choice text refer to the merged
        # choice list, so decide what's hidden before anything moves
        hidden = set()
        for entry in result.conditional_choices:
            met = self.rules.evaluate_all(entry.get("conditions"), context)
            if met != entry.get("show_when", True):
                hidden.add(entry["choice_index"])

        for entry in result.dynamic_fields:
            met = self.rules.evaluate_all(entry.get("conditions"), context)
            value = entry.get("value_if_true") if met else entry.get("value_if_false")
            if value is None:
                continue
            if entry["field"] == "choice_text":
                i = entry["choice_index"]
                if 0 <= i < len(result.choices):
                    result.choices[i].text = value
            else:
                setattr(result, entry["field"], value)

        if result.conditional_choices:
            result.choices = [c for i, c in enumerate(result.choices) if i not in hidden]
            if len(result.choices) == 0:
                result.choices.append(Choice(CONTINUE_TEXT))

        result.template_id = template.template_id
        result.extends = []
        result.mixins = []
        result.composition = []
        result.conditional_choices = []
        result.dynamic_fields = []
        result.replace = []

        self.logger.debug(f'resolved {template.template_id} with {len(result.choices)} choices')
        return result
