# pylint: disable=line-too-long

""" MotlyToProto class for converting MOTLY schemas to Protocol Buffers (.proto files) """

import json
import logging
import os
import re
from typing import Any, Dict, List, NamedTuple, Optional, Set

from motlyproto.common import enum_prefix, enum_value, pascal, snake
from motlyproto.motlyparser import MotlyParseError, parse_directives, parse_tag

logger = logging.getLogger(__name__)

indent = '  '

# Declared as `<name> = number` in Types, these names keep their own proto scalar type.
PROTO_NUMERIC_TYPES = {
    'int32', 'int64', 'uint32', 'uint64', 'sint32', 'sint64',
    'fixed32', 'fixed64', 'sfixed32', 'sfixed64', 'float', 'double',
}
GENERIC_NUMBER_TYPE = 'number'

TYPES_SECTION = 'Types'
REQUIRED_SECTION = 'Required'
OPTIONAL_SECTION = 'Optional'
UNION_MARKER = 'oneOf'

TIMESTAMP_TYPE = 'google.protobuf.Timestamp'
STRUCT_TYPE = 'google.protobuf.Struct'
VALUE_TYPE = 'google.protobuf.Value'

# Type references nothing declares or maps fall back to a plain string.
UNKNOWN_TYPE_FALLBACK = 'string'
# oneOf unions are not expanded; any union collapses to a dynamic value.
UNION_TYPE_FALLBACK = VALUE_TYPE

SCALAR_TYPES = {
    'string': 'string',
    'number': 'double',
    'boolean': 'bool',
    'date': TIMESTAMP_TYPE,
    'tag': STRUCT_TYPE,
    'flag': 'bool',
    'any': VALUE_TYPE,
}

WELL_KNOWN_IMPORTS = [
    ('google/protobuf/timestamp.proto', {TIMESTAMP_TYPE}),
    ('google/protobuf/struct.proto', {STRUCT_TYPE, VALUE_TYPE}),
]

ProtoField = NamedTuple('ProtoField', [('name', str), ('type', str), ('repeated', bool), ('optional', bool), ('number', int)])
ProtoEnum = NamedTuple('ProtoEnum', [('name', str), ('values', List[str])])
ProtoMessage = NamedTuple('ProtoMessage', [('name', str), ('fields', List['ProtoField'])])
ResolvedType = NamedTuple('ResolvedType', [('type', str), ('repeated', bool)])
ConversionContext = NamedTuple('ConversionContext',
                               [('type_aliases', Dict[str, str]), ('custom_types', Dict[str, Any]),
                                ('messages', List['ProtoMessage']), ('enums', List['ProtoEnum']),
                                ('generated_messages', Set[str]), ('generated_enums', Set[str]),
                                ('package_name', Optional[str])])


def enum_literal(value: Any) -> str:
    """Stringify an enum literal the way it was written in the schema."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return json.dumps(value)


class MotlyToProto:
    """ Converts a parsed MOTLY schema tree into a proto3 document """

    def __init__(self) -> None:
        self.package_name: Optional[str] = None

    def build_type_aliases(self, custom_types: Dict[str, Any]) -> Dict[str, str]:
        """Collect the numeric proto scalar names that the schema declares as numbers."""
        aliases: Dict[str, str] = {}
        for name, value in custom_types.items():
            if value == GENERIC_NUMBER_TYPE and name in PROTO_NUMERIC_TYPES:
                aliases[name] = name
        return aliases

    def create_context(self, schema: Dict[str, Any], package_name: Optional[str]) -> ConversionContext:
        custom_types = schema.get(TYPES_SECTION)
        if not isinstance(custom_types, dict):
            custom_types = {}
        return ConversionContext(self.build_type_aliases(custom_types), custom_types, [], [], set(), set(), package_name)

    def register_enum(self, enum_name: str, literals: List[Any], context: ConversionContext) -> str:
        """Add an enum declaration unless one with the same name was already generated."""
        if enum_name not in context.generated_enums:
            context.generated_enums.add(enum_name)
            context.enums.append(ProtoEnum(enum_name, [enum_literal(v) for v in literals]))
            logger.debug("Generated enum %s with %d values", enum_name, len(literals))
        return enum_name

    def register_message(self, message_name: str, schema_object: Dict[str, Any], context: ConversionContext) -> str:
        """
        Add a message declaration unless one with the same name was already generated.

        The name is recorded before the body is built, so a type that refers back
        to itself while it is being built resolves to the same name instead of
        recursing again.
        """
        if message_name not in context.generated_messages:
            context.generated_messages.add(message_name)
            message = self.build_message(message_name, schema_object, context)
            context.messages.append(message)
            logger.debug("Generated message %s with %d fields", message_name, len(message.fields))
        return message_name

    def build_message(self, name: str, schema_object: Any, context: ConversionContext) -> ProtoMessage:
        """Build a message from the Required and Optional sections of a schema object."""
        fields: List[ProtoField] = []
        field_number = 1
        if not isinstance(schema_object, dict):
            return ProtoMessage(name, fields)
        for section, optional in ((REQUIRED_SECTION, False), (OPTIONAL_SECTION, True)):
            section_fields = schema_object.get(section)
            if not isinstance(section_fields, dict):
                continue
            for field_name, field_type in section_fields.items():
                resolved = self.resolve_type(field_type, field_name, name, context)
                fields.append(ProtoField(snake(field_name), resolved.type, resolved.repeated, optional, field_number))
                field_number += 1
        return ProtoMessage(name, fields)

    def resolve_type(self, field_type: Any, field_name: str, parent_name: str, context: ConversionContext) -> ResolvedType:
        """
        Resolve the declared type of a field.

        Inline enums ([a, b]) and inline objects ({...}) are named after the parent
        message and the field. Strings ending in '[]' are arrays of the inner type.
        Any other string goes through resolve_single_type().
        """
        if isinstance(field_type, list):
            return ResolvedType(self.register_enum(parent_name + pascal(field_name), field_type, context), False)

        if isinstance(field_type, str):
            array_match = re.match(r'^(.+)\[\]$', field_type)
            if array_match:
                return ResolvedType(self.resolve_single_type(array_match.group(1), context), True)
            return ResolvedType(self.resolve_single_type(field_type, context), False)

        if isinstance(field_type, dict):
            return ResolvedType(self.register_message(parent_name + pascal(field_name), field_type, context), False)

        logger.debug("Field %s.%s has no usable type, using %s", parent_name, field_name, UNKNOWN_TYPE_FALLBACK)
        return ResolvedType(UNKNOWN_TYPE_FALLBACK, False)

    def resolve_single_type(self, type_name: str, context: ConversionContext) -> str:
        """Resolve a named type: numeric aliases, then custom types, then built-in scalars."""
        if type_name in context.type_aliases:
            return context.type_aliases[type_name]

        custom_type = context.custom_types.get(type_name)
        if isinstance(custom_type, list):
            return self.register_enum(pascal(type_name), custom_type, context)
        if isinstance(custom_type, dict):
            if isinstance(custom_type.get(UNION_MARKER), list):
                logger.debug("Union type %s mapped to %s", type_name, UNION_TYPE_FALLBACK)
                return UNION_TYPE_FALLBACK
            return self.register_message(pascal(type_name), custom_type, context)

        if type_name in SCALAR_TYPES:
            return SCALAR_TYPES[type_name]
        logger.debug("Unknown type %s mapped to %s", type_name, UNKNOWN_TYPE_FALLBACK)
        return UNKNOWN_TYPE_FALLBACK

    def required_imports(self, context: ConversionContext) -> List[str]:
        """Well-known type imports referenced by any generated field, in a fixed order."""
        field_types = {field.type for message in context.messages for field in message.fields}
        return [proto_import for proto_import, types in WELL_KNOWN_IMPORTS if field_types & types]

    def render_enum(self, enum: ProtoEnum) -> List[str]:
        prefix = enum_prefix(enum.name)
        lines = [f"enum {enum.name} {{", f"{indent}{prefix}_UNSPECIFIED = 0;"]
        for index, value in enumerate(enum.values, start=1):
            lines.append(f"{indent}{prefix}_{enum_value(value)} = {index};")
        lines.append("}")
        return lines

    def render_message(self, message: ProtoMessage) -> List[str]:
        lines = [f"message {message.name} {{"]
        for field in message.fields:
            # proto3 does not allow 'optional' on repeated fields
            optional = 'optional ' if field.optional and not field.repeated else ''
            repeated = 'repeated ' if field.repeated else ''
            lines.append(f"{indent}{optional}{repeated}{field.type} {field.name} = {field.number};")
        lines.append("}")
        return lines

    def render_proto(self, context: ConversionContext) -> str:
        """Render the collected enums and messages as a proto3 document."""
        lines = ['syntax = "proto3";', '']
        if context.package_name:
            lines += [f"package {context.package_name};", '']

        imports = self.required_imports(context)
        if imports:
            lines += [f'import "{proto_import}";' for proto_import in imports]
            lines.append('')

        for enum in context.enums:
            lines += self.render_enum(enum)
            lines.append('')
        for message in context.messages:
            lines += self.render_message(message)
            lines.append('')
        return '\n'.join(lines)

    def convert_motly_schema_to_proto(self, schema_content: str, message_name: str) -> str:
        """
        Convert MOTLY schema text into a proto3 document.

        Args:
            schema_content (str): The schema text, optionally starting with '#!' directives.
            message_name (str): The name of the root message.

        Returns:
            str: The proto3 document.

        Raises:
            MotlyParseError: If the directives or the schema do not parse.
        """
        directives, rest = parse_directives(schema_content)
        result = parse_tag(rest)
        if result.log:
            raise MotlyParseError('Parse errors', result.log)
        schema = result.tag.to_object()

        package_name = self.package_name
        if package_name is None and isinstance(directives.get('package'), str):
            package_name = directives['package']

        context = self.create_context(schema, package_name)
        root_message = self.build_message(message_name, schema, context)
        context.messages.insert(0, root_message)
        return self.render_proto(context)


def derive_message_name(file_path: str) -> str:
    """Derive a root message name from a schema file name, e.g. 'user-profile.motly' -> 'UserProfile'."""
    base_name = os.path.basename(file_path) or 'Schema'
    name = re.sub(r'\.(motly|mtly)$', '', base_name)
    name = re.sub(r'(^|[-_])([A-Za-z0-9_])', lambda m: m.group(2).upper(), name)
    name = re.sub(r'[^a-zA-Z0-9]', '', name)
    return name or 'Schema'


def convert_motly_schema_to_proto(schema_content: str, message_name: str, package_name: Optional[str] = None) -> str:
    """Convert MOTLY schema text to proto3; package_name overrides a '#! package' directive."""
    motlytoproto = MotlyToProto()
    motlytoproto.package_name = package_name
    return motlytoproto.convert_motly_schema_to_proto(schema_content, message_name)


def convert_motly_to_proto(motly_file_path: str, proto_file_path: Optional[str] = None, message_name: Optional[str] = None, package_name: Optional[str] = None) -> str:
    """Convert a MOTLY schema file to proto3, writing the result to proto_file_path when given."""
    with open(motly_file_path, 'r', encoding='utf-8') as motly_file:
        schema_content = motly_file.read()
    if not message_name:
        message_name = derive_message_name(motly_file_path)
    proto = convert_motly_schema_to_proto(schema_content, message_name, package_name)
    if proto_file_path:
        proto_dir = os.path.dirname(proto_file_path)
        if proto_dir and not os.path.exists(proto_dir):
            os.makedirs(proto_dir, exist_ok=True)
        with open(proto_file_path, 'w', encoding='utf-8') as proto_file:
            proto_file.write(proto)
    return proto
