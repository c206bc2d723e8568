### stdlib imports
import typing

### vendor imports
import pydantic

### local imports
from . import errors, model


def field_table(
    target_type: model.TargetType,
) -> tuple[list[str], list[str]]:
    """Return the (required, optional) field names of a target config variant."""
    variant = model.CONFIG_VARIANTS[target_type]
    required = [name for name, info in variant.model_fields.items() if info.is_required()]
    optional = [name for name, info in variant.model_fields.items() if not info.is_required()]
    return required, optional


def _is_blank(value: typing.Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def resolve_target_config(
    target_type: typing.Union[model.TargetType, str],
    raw_fields: typing.Mapping[str, typing.Any],
) -> model.TargetConfig:
    """
    Build the canonical config object for a target type out of collected form fields.

    Only fields that belong to the variant are considered, anything else in
    `raw_fields` is discarded. Blank values count as missing. Raises
    `errors.ValidationError` keyed by field name when a required field is absent
    or a value can't be coerced to the field's type.
    """
    try:
        target_type = model.TargetType(target_type)
    except ValueError:
        raise errors.ValidationError({"type": f"Unknown target type '{target_type}'"})

    variant = model.CONFIG_VARIANTS[target_type]
    required, _ = field_table(target_type)

    values = {
        name: raw_fields[name]
        for name in variant.model_fields
        if name in raw_fields and not _is_blank(raw_fields[name])
    }

    missing = {
        name: f"{name.replace('_', ' ').capitalize()} is required"
        for name in required
        if name not in values
    }
    if missing:
        raise errors.ValidationError(missing)

    try:
        return variant.model_validate(values)
    except pydantic.ValidationError as err:
        raise errors.ValidationError(
            {
                ".".join(str(part) for part in error["loc"]): error["msg"]
                for error in err.errors()
            }
        )


def _wire_value(value: typing.Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_wire(config: model.TargetConfig) -> dict[str, str]:
    """The backend keeps target configs as a string to string map."""
    return {
        name: _wire_value(value)
        for name, value in config.model_dump(exclude_none=True).items()
    }


class TargetForm:
    """
    Draft of a target being created or edited.

    Selecting a type always starts over with an empty config, so fields of the
    previous variant can never be submitted, even when the names coincide.
    """

    def __init__(
        self,
        name: str = "",
        target_type: typing.Union[model.TargetType, str] = model.TargetType.LOCAL,
        config: typing.Optional[typing.Mapping[str, typing.Any]] = None,
    ):
        self.name = name
        self.type = model.TargetType(target_type)
        self.config: dict[str, typing.Any] = dict(config or {})

    @classmethod
    def from_target(cls, target: model.Target) -> "TargetForm":
        return cls(target.name, target.type, target.config.model_dump(exclude_none=True))

    def select_type(self, target_type: typing.Union[model.TargetType, str]) -> None:
        self.type = model.TargetType(target_type)
        self.config = {}

    def set_field(self, name: str, value: typing.Any) -> None:
        self.config[name] = value

    def resolve(self) -> model.TargetInput:
        field_errors: dict[str, str] = {}
        if _is_blank(self.name):
            field_errors["name"] = "Name is required"

        config: typing.Optional[model.TargetConfig] = None
        try:
            config = resolve_target_config(self.type, self.config)
        except errors.ValidationError as err:
            field_errors.update(
                {f"config.{name}": message for name, message in err.field_errors.items()}
            )

        if field_errors:
            raise errors.ValidationError(field_errors)

        assert config is not None
        return model.TargetInput(name=self.name.strip(), type=self.type, config=to_wire(config))
