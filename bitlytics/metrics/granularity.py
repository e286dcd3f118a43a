from typing import List, Optional

from bitlytics.core.config import GranularitySpec, Settings
from bitlytics.core.config import settings as default_settings
from bitlytics.domain.models import Context, GranularityRequest


class GranularityCatalog:
    """Ordered table of configured granularities (finest to coarsest).

    Requests may be a single name, a list of names, or a 2-tuple
    (`GranularityRange`) selecting an inclusive slice of the catalog order.
    Unknown names are dropped; an empty result falls back to the context
    default, and then to the finest granularity.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.names: List[str] = list(self.config.granularities.keys())

    def spec(self, name: str) -> GranularitySpec:
        return self.config.granularities[name]

    def validate(self, context: Context, request: GranularityRequest) -> List[str]:
        return self._check(request) or self.default_for(context)

    def default_for(self, context: Context) -> List[str]:
        configured = getattr(self.config, f"{context.long}_granularity", None)
        return self._check(configured) or self.names[:1]

    def first(self, context: Context, request: GranularityRequest) -> str:
        return self.validate(context, request)[0]

    def _check(self, request: GranularityRequest) -> List[str]:
        if request is None:
            return []
        if isinstance(request, tuple):
            if len(request) != 2:
                return []
            first, last = (str(n) for n in request)
            if first not in self.names or last not in self.names:
                return []
            return self.names[self.names.index(first) : self.names.index(last) + 1]
        if isinstance(request, str):
            request = [request]
        checked: List[str] = []
        for name in (str(n) for n in request):
            if name in self.names and name not in checked:
                checked.append(name)
        return checked

    def __contains__(self, name: str) -> bool:
        return name in self.names

    def __iter__(self):
        return iter(self.names)