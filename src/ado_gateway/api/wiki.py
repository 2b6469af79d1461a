"""Project wikis and their pages."""

from typing import Optional

from ado_gateway.providers.base import JsonDict
from .base import ResilientFacade


class WikiAPI(ResilientFacade):

    async def list_wikis(self) -> JsonDict:
        return await self._execute("listWikis", "wikis", lambda provider: provider.list_wikis())

    async def get_wiki(self, wiki_identifier: str) -> JsonDict:
        return await self._execute("getWiki", wiki_identifier, lambda provider: provider.get_wiki(wiki_identifier))

    async def create_wiki(self, data: JsonDict) -> JsonDict:
        self.validator.require_keys(data, ["name"], "Wiki name is required")
        return await self._execute("createWiki", data["name"], lambda provider: provider.create_wiki(data))

    async def delete_wiki(self, wiki_identifier: str) -> None:
        await self._execute("deleteWiki", wiki_identifier, lambda provider: provider.delete_wiki(wiki_identifier))

    async def list_pages(self, wiki_identifier: str, path: Optional[str] = None) -> JsonDict:
        """List pages under ``path`` (the wiki root when omitted), recursively."""
        return await self._execute(
            "listWikiPages",
            wiki_identifier,
            lambda provider: provider.list_wiki_pages(wiki_identifier, path),
            path=path,
        )

    async def get_page(
        self, wiki_identifier: str, path: str, include_content: Optional[bool] = None
    ) -> JsonDict:
        self.validator.require(path, "Page path is required", field="path")
        return await self._execute(
            "getWikiPage",
            f"{wiki_identifier}:{path}",
            lambda provider: provider.get_wiki_page(wiki_identifier, path, include_content),
        )

    async def create_page(self, wiki_identifier: str, path: str, data: JsonDict) -> JsonDict:
        self.validator.require(path, "Page path is required", field="path")
        return await self._execute(
            "createWikiPage",
            f"{wiki_identifier}:{path}",
            lambda provider: provider.create_wiki_page(wiki_identifier, path, data),
        )

    async def update_page(
        self, wiki_identifier: str, path: str, data: JsonDict, version: Optional[str] = None
    ) -> JsonDict:
        """Replace a page's content; ``version`` is the page ETag used for optimistic concurrency."""
        self.validator.require(path, "Page path is required", field="path")
        return await self._execute(
            "updateWikiPage",
            f"{wiki_identifier}:{path}",
            lambda provider: provider.update_wiki_page(wiki_identifier, path, data, version),
        )

    async def delete_page(self, wiki_identifier: str, path: str) -> None:
        self.validator.require(path, "Page path is required", field="path")
        await self._execute(
            "deleteWikiPage",
            f"{wiki_identifier}:{path}",
            lambda provider: provider.delete_wiki_page(wiki_identifier, path),
        )
