"""Element read wrappers: ``GET /{node|way|relation}/{id}``."""

from __future__ import annotations

from osmify.codec import decode_elements
from osmify.errors import OsmifyCodecError
from osmify.geo import CoordinatePrecision
from osmify.models import Element, ElementRef

from .transport import AsyncOsmTransport, OsmTransport


def _single(elements: list[Element], ref: ElementRef) -> Element:
    for element in elements:
        if element.ref == ref:
            return element
    raise OsmifyCodecError(
        message=f"response does not contain {ref}",
        context={"reason": "missing_element", "element_type": ref.type.value, "element_id": ref.id},
    )


class ElementAPI:
    """Synchronous element reads.

    Parameters
    ----------
    transport:
        A configured :class:`OsmTransport`.
    precision:
        Precision applied to decoded node coordinates.
    """

    def __init__(
        self,
        transport: OsmTransport,
        precision: CoordinatePrecision = CoordinatePrecision.DOUBLE,
    ) -> None:
        self._transport = transport
        self._precision = precision

    def get(self, ref: ElementRef) -> Element:
        """Fetch the latest version of *ref*.

        Raises
        ------
        OsmifyNotFoundError
            If the element never existed.
        OsmifyGoneError
            If the element has been deleted.
        """
        body = self._transport.request("GET", f"/{ref.type.value}/{ref.id}")
        return _single(decode_elements(body, self._precision), ref)


class AsyncElementAPI:
    """Asynchronous element reads.  Mirrors :class:`ElementAPI`."""

    def __init__(
        self,
        transport: AsyncOsmTransport,
        precision: CoordinatePrecision = CoordinatePrecision.DOUBLE,
    ) -> None:
        self._transport = transport
        self._precision = precision

    async def get(self, ref: ElementRef) -> Element:
        body = await self._transport.request("GET", f"/{ref.type.value}/{ref.id}")
        return _single(decode_elements(body, self._precision), ref)
