from schemas.article import Article, FeedItem
from schemas.chunk import Chunk, ChunkMetadata, IndexedDocument
from schemas.conversation import ConversationTurn, Role, Source
