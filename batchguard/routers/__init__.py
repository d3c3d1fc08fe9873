from batchguard.routers import admin_batch_switch, batch_switch
