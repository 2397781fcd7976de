"""
Option models for the model API.

Every public model operation accepts a fixed set of keyword options. The
options are validated by the pydantic models below; unknown options are
rejected.
"""

from typing import Any, Dict, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..core.abort import AbortSignal
from ..exceptions import ValidationError

DEFAULT_QUERY_LIMIT = 50

OptionsT = TypeVar('OptionsT', bound=BaseModel)


class RawQueryOptions(BaseModel):
    """Native Query parameters that may be merged into a generated query."""

    Limit: Optional[int] = Field(None, ge=1, description="Maximum number of items evaluated per Query call")
    ScanIndexForward: Optional[bool] = Field(None, description="False to read the index in descending order")
    FilterExpression: Optional[str] = Field(None, description="Filter applied after the key condition")
    ExpressionAttributeNames: Optional[Dict[str, str]] = Field(None, description="Additional attribute name placeholders")
    ExpressionAttributeValues: Optional[Dict[str, Any]] = Field(None, description="Additional attribute value placeholders")
    ExclusiveStartKey: Optional[Dict[str, Any]] = Field(None, description="Native continuation key")

    model_config = ConfigDict(extra='forbid')

    def to_request(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class RawFetchOptions(BaseModel):
    """Native parameters for the record-fetch phase of a query."""

    ConsistentRead: Optional[bool] = Field(None, description="Use strongly consistent reads")

    model_config = ConfigDict(extra='forbid')


class GetByIdOptions(BaseModel):
    """Options for get_by_id and get_by_ids."""

    abort_signal: Optional[AbortSignal] = Field(None, description="Signal used to cancel the request")
    consistent_read: bool = Field(False, description="Use strongly consistent reads")

    model_config = ConfigDict(extra='forbid', arbitrary_types_allowed=True)


class QueryManyIdsOptions(BaseModel):
    """Options for query_many_ids."""

    limit: int = Field(DEFAULT_QUERY_LIMIT, ge=1, description="Maximum number of results returned in total")
    abort_signal: Optional[AbortSignal] = Field(None, description="Signal used to cancel the requests")
    start_after: Optional[Any] = Field(None, description="Document to continue the query after")
    raw_query_options: Optional[RawQueryOptions] = Field(None, description="Native Query parameters")

    model_config = ConfigDict(extra='forbid', arbitrary_types_allowed=True)


class QueryManyOptions(QueryManyIdsOptions):
    """Options for query_many."""

    raw_fetch_options: Optional[RawFetchOptions] = Field(None, description="Native parameters for the record fetches")
    only_projected: bool = Field(
        False,
        description="Build partial documents from the index projection instead of fetching the records"
    )


class QueryOneIdOptions(QueryManyIdsOptions):
    """Options for query_one_id."""

    limit: Literal[1] = Field(1, description="Must be 1 when given")


class QueryOneOptions(QueryManyOptions):
    """Options for query_one."""

    limit: Literal[1] = Field(1, description="Must be 1 when given")


class RawQueryOptionsBase(BaseModel):
    abort_signal: Optional[AbortSignal] = Field(None, description="Signal used to cancel the requests")

    model_config = ConfigDict(extra='forbid', arbitrary_types_allowed=True)


class RawQueryOneIdOptions(RawQueryOptionsBase):
    """Options for raw_query_one_id."""


class RawQueryManyIdsOptions(RawQueryOptionsBase):
    """Options for raw_query_many_ids."""

    limit: int = Field(DEFAULT_QUERY_LIMIT, ge=1, description="Maximum number of ids returned in total")


class RawQueryIteratorIdsOptions(RawQueryOptionsBase):
    """Options for raw_query_iterator_ids."""

    limit: Optional[int] = Field(None, ge=1, description="Maximum number of ids yielded (None for no limit)")


def parse_options(options_class: Type[OptionsT], options: Dict[str, Any]) -> OptionsT:
    """
    Validate keyword options against an option model.

    Raises:
        ValidationError: If an option is unknown or has an invalid value
    """
    try:
        return options_class.model_validate(options)
    except PydanticValidationError as e:
        errors = [
            {'path': '/' + '/'.join(str(part) for part in error['loc']), 'message': error['msg']}
            for error in e.errors()
        ]
        details = ', '.join(f"{error['path']} {error['message']}" for error in errors)
        raise ValidationError(f"Invalid options: {details}.", errors=errors, original_error=e) from e
