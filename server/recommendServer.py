import os
import logging
from typing import Optional

import anyio
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool
from dotenv import load_dotenv

from client.bigQuery import Client as BigQueryClient
from client.friendshipCache import Client as FriendshipCacheClient
from client.interactionCache import Client as InteractionCacheClient
from client.memberData import Client as MemberDataClient
from rankingAlgos.friendAlgo import FriendRecommender
from shared.config import get_config, load_bigquery_settings
from shared.errors import ConfigError, RequestCancelled, StoreUnavailable, SystemOfRecordError

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

CLIENT_CLOSED_REQUEST = 499
RETRY_AFTER_SECONDS = "5"


class RecommendServer:
    def __init__(self, recommender: Optional[FriendRecommender] = None):
        """Initialize recommendation server"""
        self.recommender = recommender
        self.app = FastAPI()
        self.setup_routes()

    def get_recommender(self) -> FriendRecommender:
        """Get or create the recommender and its store clients"""
        if self.recommender is None:
            config = get_config()
            bq_client = BigQueryClient(*load_bigquery_settings())

            friendship_cache = FriendshipCacheClient()
            interaction_cache = InteractionCacheClient(connection=friendship_cache.client)
            member_client = MemberDataClient(bq_client, config.get('rebuild.dataset', 'data'))

            self.recommender = FriendRecommender(friendship_cache, interaction_cache, member_client, config)
            logger.info("Friend recommender initialized")
        return self.recommender

    def setup_routes(self):
        """Setup FastAPI routes"""

        @self.app.get("/")
        def root():
            return {"status": "healthy", "service": "friend-recommend"}

        @self.app.get("/health")
        def health_check():
            try:
                friendship_cache = self.get_recommender().friendship_cache
                healthy = friendship_cache.is_healthy()
            except (ConfigError, StoreUnavailable) as e:
                logger.error(f"Health check failed: {e}")
                return JSONResponse({"status": "unhealthy", "error": str(e)}, status_code=503)

            if not healthy:
                return JSONResponse({"status": "unhealthy"}, status_code=503)
            return {"status": "healthy", "redis": friendship_cache.get_stats()}

        @self.app.get("/api/friends/recommend")
        async def recommend_friends(request: Request, member_id: int = Query(..., gt=0),
                                    limit: Optional[int] = Query(None, ge=0)):
            if await request.is_disconnected():
                logger.info(f"Client disconnected before recommendation for member {member_id}")
                return Response(status_code=CLIENT_CLOSED_REQUEST)

            def is_cancelled() -> bool:
                # Polled from the worker thread
                return anyio.from_thread.run(request.is_disconnected)

            try:
                recommender = self.get_recommender()
                friends = await run_in_threadpool(recommender.recommend, member_id, limit, is_cancelled)
            except RequestCancelled:
                logger.info(f"Client disconnected during recommendation for member {member_id}")
                return Response(status_code=CLIENT_CLOSED_REQUEST)
            except (ConfigError, StoreUnavailable, SystemOfRecordError) as e:
                logger.error(f"Recommendation failed for member {member_id}: {e}")
                return JSONResponse(
                    {"error": "recommendation temporarily unavailable"},
                    status_code=503,
                    headers={"Retry-After": RETRY_AFTER_SECONDS}
                )

            return {"member_id": member_id, "friends": [friend.to_dict() for friend in friends]}


server = RecommendServer()
app = server.app

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv('PORT', 8000))
    host = os.getenv('HOST', '0.0.0.0')

    uvicorn.run(app, host=host, port=port)
