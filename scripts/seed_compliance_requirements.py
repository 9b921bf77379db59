#!/usr/bin/env python3
"""
Seed compliance requirements

Adds the default KYC requirements (Aadhaar and PAN). Existing requirements
are left alone.

Usage:
    python scripts/seed_compliance_requirements.py
    python scripts/seed_compliance_requirements.py --types AADHAAR PAN KYC
"""

from script_utils import create_base_parser, get_db_session, print_header, print_summary, run_async

from app.core.errors import DuplicateRequirement
from app.models import DocumentType
from app.services.compliance import create_requirement

DEFAULT_REQUIREMENTS = {
    DocumentType.AADHAAR: ("Aadhaar", "Aadhaar card of the authorised signatory"),
    DocumentType.PAN: ("PAN", "PAN card of the business or signatory"),
    DocumentType.KYC: ("KYC form", "Signed KYC declaration"),
}


async def main(types: list[str]) -> dict:
    print_header("SEED COMPLIANCE REQUIREMENTS")
    stats = {"created": 0, "existing": 0}
    async with get_db_session() as session:
        for raw in types:
            document_type = DocumentType(raw)
            name, description = DEFAULT_REQUIREMENTS.get(
                document_type, (document_type.value.title(), None)
            )
            try:
                await create_requirement(session, document_type, name, description)
                stats["created"] += 1
                print(f"  + {document_type.value}")
            except DuplicateRequirement:
                stats["existing"] += 1
                print(f"  = {document_type.value} (exists)")
    print_summary(stats)
    return stats


if __name__ == "__main__":
    parser = create_base_parser("Seed default compliance requirements")
    parser.add_argument(
        "--types",
        nargs="+",
        default=[DocumentType.AADHAAR.value, DocumentType.PAN.value],
        choices=[t.value for t in DocumentType],
        help="Document types to require",
    )
    args = parser.parse_args()
    run_async(main(args.types))
