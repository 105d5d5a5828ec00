# Import database modules
from app.db.connection import connect_to_mongo, close_mongo_connection, get_database
from app.db.repository import (
    save_request_info,
    save_analysis,
    get_analysis_by_id,
    get_user_analyses,
    get_user_analyses_paginated,
    delete_analysis,
    get_user_stats,
)
