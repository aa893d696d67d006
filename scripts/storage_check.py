#!/usr/bin/env python3
"""
Storage connectivity check for the eSign service.

Verifies the configured backend can see the signed-output folder, writes and
removes a small probe object there, and lists the templates for each
document type.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from esign.core.config import settings
from esign.core.errors import EsignError
from esign.core.schemas.esign import DocType
from esign.storage import create_storage


def main():
    print("📦 eSign Storage Check")
    print("=" * 40)
    print(f"Backend: {settings.STORAGE_BACKEND}")

    try:
        storage = create_storage(settings)
    except EsignError as e:
        print(f"❌ Storage unavailable: {e.message}")
        return False

    result = storage.check(settings.SIGNED_FOLDER, write_probe=True)
    print(f"Signed folder: {result['folder'] or '(root)'}")
    print(f"Reachable: {result['reachable']}")
    print(f"Writable: {result['writable']}")
    if result["error"]:
        print(f"⚠️  {result['error']}")

    for doc_type in DocType:
        folder = settings.template_folder_for(doc_type.value)
        try:
            templates = storage.list_pdfs(folder)
        except EsignError as e:
            print(f"❌ {doc_type.value} templates ({folder}): {e.message}")
            continue
        newest = templates[0].name if templates else "none"
        print(f"{doc_type.value} templates ({folder}): {len(templates)} found, newest: {newest}")

    return bool(result["reachable"] and result["writable"])


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
