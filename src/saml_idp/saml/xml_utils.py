"""XML helpers shared by the signature, encryption and parsing engines.

Holds the SAML, XML-DSig and XML-Encryption namespace constants, a hardened
lxml parse function, exclusive canonicalization and tree helpers.
"""

import logging
from typing import Iterator, Optional, Union

from lxml import etree

from ..utils.exceptions import MalformedXmlError

logger = logging.getLogger(__name__)

SAML_NS = "urn:oasis:names:tc:SAML:2.0:assertion"
SAMLP_NS = "urn:oasis:names:tc:SAML:2.0:protocol"
DS_NS = "http://www.w3.org/2000/09/xmldsig#"
XENC_NS = "http://www.w3.org/2001/04/xmlenc#"
XENC11_NS = "http://www.w3.org/2009/xmlenc11#"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
XS_NS = "http://www.w3.org/2001/XMLSchema"

EXC_C14N = "http://www.w3.org/2001/10/xml-exc-c14n#"
EXC_C14N_WITH_COMMENTS = "http://www.w3.org/2001/10/xml-exc-c14n#WithComments"
ENVELOPED_SIGNATURE = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"

NSMAP = {
    "saml": SAML_NS,
    "samlp": SAMLP_NS,
    "ds": DS_NS,
    "xenc": XENC_NS,
}


def ds_tag(local_name: str) -> str:
    return f"{{{DS_NS}}}{local_name}"


def xenc_tag(local_name: str) -> str:
    return f"{{{XENC_NS}}}{local_name}"


def local_name(element: etree._Element) -> Optional[str]:
    """Return the local name of an element, or None for comments and PIs."""
    if not isinstance(element.tag, str):
        return None
    return etree.QName(element).localname


def parse_xml(data: Union[str, bytes]) -> etree._Element:
    """Parse an untrusted XML document.

    A fresh parser is created per call so concurrent callers never share
    parser state. Entity expansion and network access are disabled and
    documents carrying a DOCTYPE are rejected.

    Args:
        data: XML document as text or UTF-8 bytes

    Returns:
        Root element

    Raises:
        MalformedXmlError: If the document is not well-formed or has a DOCTYPE
    """
    if isinstance(data, str):
        data = data.encode("utf-8")

    parser = etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        huge_tree=False,
    )
    try:
        root = etree.fromstring(data, parser=parser)
    except etree.XMLSyntaxError as e:
        raise MalformedXmlError(
            f"Malformed XML at line {e.lineno}: {e.msg}"
        ) from e

    if root.getroottree().docinfo.doctype:
        raise MalformedXmlError(
            "Document type declarations are not allowed in SAML messages"
        )
    return root


def to_string(element: etree._Element) -> str:
    """Serialize an element (and its subtree) to a unicode string."""
    return etree.tostring(element, encoding="unicode", with_tail=False)


def canonicalize(element: etree._Element) -> bytes:
    """Exclusive XML C14N 1.0 (without comments) of an element subtree."""
    return etree.tostring(element, method="c14n", exclusive=True, with_comments=False)


def find_by_id(root: etree._Element, id_value: str) -> list[etree._Element]:
    """Return every element whose ID attribute equals id_value."""
    return [
        el for el in root.iter()
        if isinstance(el.tag, str) and el.get("ID") == id_value
    ]


def iter_outside_signatures(root: etree._Element) -> Iterator[etree._Element]:
    """Yield elements in document order, skipping the inside of ds:Signature.

    Top-level ds:Signature elements themselves are yielded; their
    descendants are not. Content inside a signature is outside the signed
    digest and must never be read as message data.
    """
    stack = [root]
    while stack:
        element = stack.pop()
        if not isinstance(element.tag, str):
            continue
        yield element
        if element.tag == ds_tag("Signature"):
            continue
        stack.extend(reversed(list(element)))


def element_text(element: etree._Element) -> str:
    """Return the full text content of an element, stripped.

    Comments and processing instructions split an element's text into
    several nodes and are dropped by exclusive C14N, so every text node is
    joined rather than reading only the first one.
    """
    return "".join(element.itertext()).strip()
