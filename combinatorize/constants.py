"""Constants for the combinatorize package.

Result-tree markers, combinator keywords and the message templates used by
the validator. Message templates are plain ``str.format`` templates so that
callers can swap them for translated text.
"""


class RequiredMarker(str):
    """Marks a mandatory field that is absent.

    Compares equal to the string ``'REQUIRED'`` so that result trees stay
    plain JSON, but can be told apart from free-text messages with
    ``isinstance`` (see :func:`is_required`).
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return 'REQUIRED'


REQUIRED = RequiredMarker('REQUIRED')

# key of the combinator wrapper in raw result trees
VALIDATION = 'VALIDATION'

ANY_OF = 'anyOf'
ALL_OF = 'allOf'
ONE_OF = 'oneOf'
COMBINATOR_KEYWORDS = (ALL_OF, ANY_OF, ONE_OF)

# reported for derived values that do not evaluate to a number
ERROR_MARKER = '#ERROR#'

DEFAULT_VALIDATION_MESSAGE = 'Unexpected value'

# scalar constraint keys copied verbatim from a definition onto a schema node
CONSTRAINT_KEYS = (
    'readOnly',
    'required',
    'default',
    'minimum',
    'maximum',
    'exclusiveMinimum',
    'exclusiveMaximum',
    'minLength',
    'maxLength',
    'uniqueItems',
    'minItems',
    'maxItems',
    'expression',
    'validationMessage',
    'enum',
    'format',
)

MSG_MINIMUM = 'Value has to be higher or equal than {limit}'
MSG_MAXIMUM = 'Value has to be lower or equal than {limit}'
MSG_EXCLUSIVE_MINIMUM = 'Value has to be higher than {limit}'
MSG_EXCLUSIVE_MAXIMUM = 'Value has to be lower than {limit}'
MSG_INTEGER = 'Value has to be a valid integer'
MSG_NUMBER = 'Value has to be a valid number'
MSG_PATTERN = 'Incorrect format'
MSG_MIN_LENGTH = 'Too short. Has to contain at least {limit} {noun}'
MSG_MAX_LENGTH = 'Too long. Has to contain maximum {limit} {noun}'
MSG_MIN_ITEMS = 'Collection has to contain at least {limit} {noun}'
MSG_MAX_ITEMS = 'Collection has to contain maximum {limit} {noun}'
MSG_UNIQUE_ITEMS = 'Collection needs to contain unique items. Items [{items}] are repetitive'
MSG_ENUM = 'Value has to be one of: {values}'


def is_required(value) -> bool:
    """Tells whether a result leaf is the REQUIRED sentinel."""
    return isinstance(value, RequiredMarker)
