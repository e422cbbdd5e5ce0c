import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .utils import ConfigError

DEFAULT_VALUE_TEMPLATE = '{{ value_json.stdout }}'

COMPONENT_SENSOR = 'sensor'
COMPONENT_BINARY_SENSOR = 'binary_sensor'
COMPONENT_BUTTON = 'button'

AVAILABILITY_MODES = ('all', 'any', 'latest')


@dataclass(frozen=True)
class Availability:
    topic: str
    payload_available: Optional[str] = None
    payload_not_available: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> 'Availability':
        if isinstance(data, str):
            return cls(topic=data)
        if not isinstance(data, dict) or not data.get('topic'):
            raise ConfigError(f'Invalid availability entry: {data!r}')
        return cls(
            topic=str(data['topic']),
            payload_available=data.get('payload_available'),
            payload_not_available=data.get('payload_not_available'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in dataclasses.asdict(self).items() if v is not None}


@dataclass(frozen=True)
class Device:
    identifiers: List[str]
    name: Optional[str] = None
    sw_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in dataclasses.asdict(self).items() if v is not None}


@dataclass(frozen=True)
class Discovery:
    """
    A Home Assistant entity descriptor. Fields mirror the MQTT discovery config keys;
    anything not modelled explicitly is carried in `extra` and published verbatim.
    """
    unique_id: Optional[str] = None
    name: Optional[str] = None
    device_class: Optional[str] = None
    state_class: Optional[str] = None
    unit_of_measurement: Optional[str] = None
    icon: Optional[str] = None
    value_template: Optional[str] = None
    state_topic: Optional[str] = None
    command_topic: Optional[str] = None
    device: Optional[Device] = None
    availability: List[Availability] = field(default_factory=list)
    availability_mode: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> 'Discovery':
        if not isinstance(data, dict):
            raise ConfigError(f'Discovery entry must be a mapping, got: {data!r}')
        known = {f.name for f in dataclasses.fields(cls)} - {'device', 'availability', 'extra'}
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            if key in known:
                kwargs[key] = None if value is None else str(value)
            elif key == 'availability':
                kwargs['availability'] = [Availability.from_dict(v) for v in (value or [])]
            elif key == 'device':
                raise ConfigError('The device block of a discovery entry is managed by the agent')
            else:
                extra[key] = value
        mode = kwargs.get('availability_mode')
        if mode is not None and mode not in AVAILABILITY_MODES:
            raise ConfigError(f'Invalid availability_mode: {mode!r}')
        return cls(extra=extra, **kwargs)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        for f in dataclasses.fields(self):
            if f.name in ('extra', 'device', 'availability'):
                continue
            value = getattr(self, f.name)
            if value is not None:
                payload[f.name] = value
        if self.device is not None:
            payload['device'] = self.device.to_dict()
        if self.availability:
            payload['availability'] = [a.to_dict() for a in self.availability]
        else:
            payload.pop('availability_mode', None)
        return payload


def derive(base: Discovery, **overrides: Any) -> Discovery:
    """
    Build a new descriptor from `base`, replacing exactly the given fields.
    """
    return dataclasses.replace(base, **overrides)


def mixin_availability(entity: Discovery, base: str, global_topic: str) -> Discovery:
    """
    Prefix the entity's own availability topics with `base`, append the device-wide
    availability topic and require all of them to report available.
    """
    availability = [
        dataclasses.replace(a, topic=f'{base}/{a.topic}') for a in entity.availability
    ]
    availability.append(Availability(topic=global_topic))
    return derive(entity, availability=availability, availability_mode='all')


def assign_unique_ids(name: str, entities: Iterable[Discovery]) -> List[Discovery]:
    """
    Give every entity without an explicit id one derived from `name`: the first one gets
    `name`, the following ones `name_1`, `name_2`, ... in declaration order.
    """
    result = []
    auto = 0
    for entity in entities:
        if entity.unique_id is None:
            unique_id = name if auto == 0 else f'{name}_{auto}'
            entity = derive(entity, unique_id=unique_id)
            auto += 1
        result.append(entity)
    return result


def with_default_template(entity: Discovery) -> Discovery:
    if entity.value_template is None:
        return derive(entity, value_template=DEFAULT_VALUE_TEMPLATE)
    return entity
