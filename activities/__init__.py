"""Activity definitions module."""

from activities.declaration import (
    prepare_declaration,
    build_rows,
    assemble_declaration_activity,
    check_declaration,
    render_declaration,
    PrepareDeclarationInput,
    PrepareDeclarationOutput,
    BuildRowsInput,
    BuildRowsOutput,
    AssembleDeclarationInput,
    AssembleDeclarationOutput,
    CheckDeclarationInput,
    CheckDeclarationOutput,
    RenderDeclarationInput,
    RenderDeclarationOutput,
)

DECLARATION_ACTIVITIES = [
    prepare_declaration,
    build_rows,
    assemble_declaration_activity,
    check_declaration,
    render_declaration,
]

__all__ = [
    # Declaration activities
    "prepare_declaration",
    "build_rows",
    "assemble_declaration_activity",
    "check_declaration",
    "render_declaration",
    "DECLARATION_ACTIVITIES",
    # Payloads
    "PrepareDeclarationInput",
    "PrepareDeclarationOutput",
    "BuildRowsInput",
    "BuildRowsOutput",
    "AssembleDeclarationInput",
    "AssembleDeclarationOutput",
    "CheckDeclarationInput",
    "CheckDeclarationOutput",
    "RenderDeclarationInput",
    "RenderDeclarationOutput",
]
