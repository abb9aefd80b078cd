"""Declaration endpoints.

Compiles declarations synchronously from a posted request.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Response
from pydantic import BaseModel

from jpk_engine import (
    DeclarationRequest,
    declaration_filename,
    generate_from_request,
    get_schema,
    serialize_declaration,
    summary_sources,
    validate_declaration,
)


router = APIRouter()


class DeclarationResponse(BaseModel):
    """Compiled declaration with diagnostics and check results."""
    declaration_id: str
    filename: str
    declaration: Dict[str, Any]
    diagnostics: List[Dict[str, Any]] = []
    validation: Dict[str, Any]


class SummaryTableResponse(BaseModel):
    """P_ field table of one schema version."""
    schema_version: str
    fields: Dict[str, List[str]]
    settlement: List[str]


@router.post("", response_model=DeclarationResponse)
def create_declaration(request: DeclarationRequest) -> DeclarationResponse:
    """Compile a declaration and return it as JSON."""
    result = generate_from_request(request)
    declaration = result.declaration
    report = validate_declaration(declaration)

    return DeclarationResponse(
        declaration_id=declaration.declaration_id,
        filename=declaration_filename(declaration),
        declaration=declaration.model_dump(mode="json"),
        diagnostics=[d.model_dump(mode="json") for d in result.diagnostics],
        validation=report.model_dump(mode="json"),
    )


@router.post("/xml")
def create_declaration_xml(request: DeclarationRequest) -> Response:
    """Compile a declaration and return the XML document as an attachment."""
    result = generate_from_request(request)
    declaration = result.declaration

    return Response(
        content=serialize_declaration(declaration),
        media_type="application/xml",
        headers={
            "Content-Disposition": f'attachment; filename="{declaration_filename(declaration)}"',
            "X-Diagnostics-Count": str(len(result.diagnostics)),
        },
    )


@router.get("/schemas/{version}/summary", response_model=SummaryTableResponse)
def get_summary_table(version: str) -> SummaryTableResponse:
    """Which register fields feed each P_ field."""
    schema = get_schema(version)
    return SummaryTableResponse(
        schema_version=schema.version,
        fields=summary_sources(schema),
        settlement=list(schema.settlement_fields),
    )
