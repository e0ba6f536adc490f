"""
Shared identifiers, flag keys and closed enumerations for the spell book engine.
Serialized values keep the legacy string tokens so persisted data stays readable.
"""

from enum import Enum, IntEnum
from typing import Optional

MODULE_ID = 'spell-book'


class PACKS:
    """Compendium packs the engine owns"""
    SPELL_LISTS = 'spell-book.custom-spell-lists'
    USER_DATA = 'spell-book.user-spell-data'


class FLAGS:
    """Flag keys stored on actors, users and documents under MODULE_ID"""
    CANTRIP_SWAP_TRACKING = 'cantripSwapTracking'
    CLASS_RULES = 'classRules'
    ENFORCEMENT_BEHAVIOR = 'enforcementBehavior'
    PARTY_MODE_ENABLED = 'partyModeEnabled'
    PREPARED_SPELLS = 'preparedSpells'
    PREPARED_SPELLS_BY_CLASS = 'preparedSpellsByClass'
    PREVIOUS_CANTRIP_MAX = 'previousCantripMax'
    PREVIOUS_LEVEL = 'previousLevel'
    RULE_SET_OVERRIDE = 'ruleSetOverride'
    SPELL_LOADOUTS = 'spellLoadouts'
    SPELLCASTING_FOCUS = 'spellcastingFocus'

    # Document markers
    IS_USER_SPELL_DATA_JOURNAL = 'isUserSpellDataJournal'
    IS_USER_SPELL_DATA_FOLDER = 'isUserSpellDataFolder'
    IS_USER_SPELL_DATA = 'isUserSpellData'
    IS_INTRO_PAGE = 'isIntroPage'
    IS_ACTOR_SPELLBOOK = 'isActorSpellbook'
    IS_MODULE_RITUAL = 'isModuleRitual'
    IS_CUSTOM = 'isCustom'
    IS_MERGED = 'isMerged'
    IS_NEW_LIST = 'isNewList'
    IS_DUPLICATE = 'isDuplicate'
    ORIGINAL_UUID = 'originalUuid'
    SOURCE_LIST_UUIDS = 'sourceListUuids'
    ADDED_SPELLS = 'addedSpells'
    REMOVED_SPELLS = 'removedSpells'
    FOLDER_TYPE = 'folderType'
    USER_ID = 'userId'
    USER_NAME = 'userName'
    ACTOR_ID = 'actorId'
    DATA_VERSION = 'dataVersion'
    MESSAGE_TYPE = 'messageType'

    # Keys that older releases wrote and nothing reads anymore
    DEPRECATED = (
        'sidebarCollapsed',
        'collapsedSpellLevels',
        'collapsedFolders',
        'wizardCopiedSpells',
        'lastSpellSwap',
    )
    NULLABLE = ('ruleSetOverride', 'enforcementBehavior')


class SETTINGS:
    """World/client setting keys"""
    SPELLCASTING_RULE_SET = 'spellcastingRuleSet'
    CANTRIP_SCALE_VALUES = 'cantripScaleValues'
    ENABLE_SPELL_USAGE_TRACKING = 'enableSpellUsageTracking'
    OVER_LIMIT_ENFORCEMENT = 'overLimitEnforcement'
    SUPPRESS_MIGRATION_WARNINGS = 'suppressMigrationWarnings'
    AVAILABLE_FOCUS_OPTIONS = 'availableFocusOptions'
    SPELL_NOTES_MAX_LENGTH = 'spellNotesMaxLength'
    CUSTOM_SPELL_LIST_MAPPINGS = 'customSpellListMappings'
    AUTO_DELETE_UNPREPARED_SPELLS = 'autoDeleteUnpreparedSpells'
    COMPLETED_MIGRATIONS = 'completedMigrations'


class MessageType(str, Enum):
    """Routing flag carried by chat messages the engine emits"""
    UPDATE_REPORT = 'update-report'
    MIGRATION_REPORT = 'migration-report'


class HookNames:
    """Host event names the engine subscribes to"""
    ACTIVITY_CONSUMPTION = 'dnd5e.activityConsumption'
    UPDATE_ACTOR = 'updateActor'
    CREATE_ITEM = 'createItem'
    DELETE_ITEM = 'deleteItem'
    RENDER_CHAT_MESSAGE = 'renderChatMessage'


class SwapMode(str, Enum):
    """When a prepared spell (or cantrip) may be exchanged"""
    NONE = 'none'
    LEVEL_UP = 'levelUp'
    LONG_REST = 'longRest'


class RitualCastingMode(str, Enum):
    NONE = 'none'
    PREPARED = 'prepared'
    ALWAYS = 'always'


class RuleSet(str, Enum):
    LEGACY = 'legacy'
    MODERN = 'modern'

    @classmethod
    def parse(cls, value, default: Optional['RuleSet'] = None) -> Optional['RuleSet']:
        try:
            return cls(value)
        except ValueError:
            return default


class EnforcementMode(str, Enum):
    """How over-limit preparation is handled"""
    STRICT = 'strict'
    NOTIFY_GM = 'notify_gm'
    UNENFORCED = 'unenforced'

    @classmethod
    def parse(cls, value, default: Optional['EnforcementMode'] = None) -> Optional['EnforcementMode']:
        """Accept current tokens and the legacy 'enforced' / 'notifyGM' spellings"""
        if isinstance(value, cls):
            return value
        aliases = {
            'enforced': cls.STRICT,
            'notifyGM': cls.NOTIFY_GM,
            'notify': cls.NOTIFY_GM,
        }
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            return default


class SpellListType(str, Enum):
    STANDARD = 'standard'
    CUSTOM = 'custom'
    MERGED = 'merged'
    MODIFIED = 'modified'


class PreparedState(IntEnum):
    """Preparation value stored on embedded spell items"""
    UNPREPARED = 0
    PREPARED = 1
    ALWAYS = 2


class CastingMethod:
    SPELL = 'spell'
    PACT = 'pact'
    RITUAL = 'ritual'
    INNATE = 'innate'
    ATWILL = 'atwill'


# Methods whose items are never touched by preparation changes
SPECIAL_CAST_MODES = frozenset({CastingMethod.INNATE, CastingMethod.ATWILL})


class ChangeReason(str, Enum):
    """Why a preparation change was rejected (or flagged)"""
    MAXIMUM_REACHED = 'MaximumReached'
    LOCKED_LEGACY = 'LockedLegacy'
    LOCKED_OUTSIDE_LEVEL_UP = 'LockedOutsideLevelUp'
    LOCKED_OUTSIDE_LONG_REST = 'LockedOutsideLongRest'
    WIZARD_RULE_ONLY = 'WizardRuleOnly'
    ONLY_ONE_SWAP = 'OnlyOneSwap'
    MUST_UNLEARN_FIRST = 'MustUnlearnFirst'
    LOCKED_NO_SWAPPING = 'LockedNoSwapping'
    CLASS_AT_MAXIMUM = 'ClassAtMaximum'
    ALWAYS_PREPARED = 'AlwaysPrepared'
    GRANTED = 'Granted'
    SPECIAL_MODE = 'SpecialMode'
    PREPARED_BY_OTHER_CLASS = 'PreparedByOtherClass'
    CANTRIP_LOCKED = 'CantripLocked'

    @property
    def message_key(self) -> str:
        """Localization key the UI renders for this reason"""
        return f'SPELLBOOK.Preparation.{self.value}'


class ErrorKind(str, Enum):
    VALIDATION = 'validation'
    CONFLICT = 'conflict'
    MISSING = 'missing'
    TRANSIENT = 'transient'
    FATAL = 'fatal'


class Ownership(IntEnum):
    """Host document permission levels"""
    NONE = 0
    LIMITED = 1
    OBSERVER = 2
    OWNER = 3


USER_DATA_SCHEMA_VERSION = 3
EXPORT_FORMAT_VERSION = 1
DEFAULT_CANTRIP_SCALE_VALUES = 'cantrips-known, cantrips'
DEFAULT_NOTES_MAX_LENGTH = 240
LOADOUT_CACHE_TTL = 30.0
USAGE_DEDUP_WINDOW_MS = 1000
FAVORITE_SORT_BASE = 100000
WIZARD_CLASS = 'wizard'
