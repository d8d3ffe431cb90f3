"""Pydantic models for check options and configuration."""

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Check Options
# ============================================================================


class ModelCheckOptions(BaseModel):
    """Selects which discrepancy categories a run reports.

    By default only the model is checked against the database (things the
    model needs that are missing). The ``*_in_database_but_not_in_model``
    checks make the run stricter by also reporting objects the model does
    not know about.

    Example:
        >>> options = ModelCheckOptions(database_schema_name="dbo")
        >>> options.check_for_tables_in_model_but_not_in_database
        True
        >>> options.check_for_tables_in_database_but_not_in_model
        False
    """

    model_config = ConfigDict(frozen=True)

    # Schema (e.g. dbo) holding the tables to compare. Empty compares all schemas.
    database_schema_name: str = ""

    check_for_tables_in_database_but_not_in_model: bool = False
    check_for_tables_in_model_but_not_in_database: bool = True
    check_for_columns_in_database_but_not_in_model: bool = False
    check_for_columns_in_model_but_not_in_database: bool = True
    check_for_relationships_in_database_but_not_in_model: bool = False
    check_for_relationships_in_model_but_not_in_database: bool = True

    @classmethod
    def strict(cls, database_schema_name: str = "") -> "ModelCheckOptions":
        """Options with all six checks enabled."""
        return cls(
            database_schema_name=database_schema_name,
            check_for_tables_in_database_but_not_in_model=True,
            check_for_tables_in_model_but_not_in_database=True,
            check_for_columns_in_database_but_not_in_model=True,
            check_for_columns_in_model_but_not_in_database=True,
            check_for_relationships_in_database_but_not_in_model=True,
            check_for_relationships_in_model_but_not_in_database=True,
        )


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from model-checker.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution


class CheckSettings(BaseModel):
    """The ``[check]`` table of model-checker.toml."""

    model: str | None = None  # Import path, e.g. "myapp.models:Base"
    schema_name: str = Field(default="", alias="schema")
    tables_in_database_but_not_in_model: bool = False
    tables_in_model_but_not_in_database: bool = True
    columns_in_database_but_not_in_model: bool = False
    columns_in_model_but_not_in_database: bool = True
    relationships_in_database_but_not_in_model: bool = False
    relationships_in_model_but_not_in_database: bool = True

    model_config = ConfigDict(populate_by_name=True)

    def to_options(self) -> ModelCheckOptions:
        return ModelCheckOptions(
            database_schema_name=self.schema_name,
            check_for_tables_in_database_but_not_in_model=self.tables_in_database_but_not_in_model,
            check_for_tables_in_model_but_not_in_database=self.tables_in_model_but_not_in_database,
            check_for_columns_in_database_but_not_in_model=self.columns_in_database_but_not_in_model,
            check_for_columns_in_model_but_not_in_database=self.columns_in_model_but_not_in_database,
            check_for_relationships_in_database_but_not_in_model=self.relationships_in_database_but_not_in_model,
            check_for_relationships_in_model_but_not_in_database=self.relationships_in_model_but_not_in_database,
        )


class CheckerConfig(BaseModel):
    """Complete configuration from model-checker.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    check: CheckSettings = Field(default_factory=CheckSettings)
